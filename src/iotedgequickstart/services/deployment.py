"""Builds the fixed quickstart deployment (edgeAgent, edgeHub, tempSensor)."""

import json
from typing import Any, Dict, Optional

from iotedgequickstart.models import RegistryCredentials

DEFAULT_REGISTRY = "mcr.microsoft.com"
EDGE_AGENT = "edgeAgent"
EDGE_HUB = "edgeHub"
TEMP_SENSOR = "tempSensor"

CORE_MODULES = (EDGE_AGENT, EDGE_HUB)
WORKLOAD_MODULES = (TEMP_SENSOR,)

_IMAGE_NAMES = {
    EDGE_AGENT: "azureiotedge-agent",
    EDGE_HUB: "azureiotedge-hub",
    TEMP_SENSOR: "azureiotedge-simulated-temperature-sensor",
}

_EDGE_HUB_CREATE_OPTIONS = {
    "HostConfig": {
        "PortBindings": {
            "8883/tcp": [{"HostPort": "8883"}],
            "443/tcp": [{"HostPort": "443"}],
        }
    }
}


def image_name(module: str, tag: str, registry: Optional[RegistryCredentials] = None) -> str:
    """Returns the full image reference for one of the quickstart modules.

    Private registries mirror the Microsoft images under a `microsoft/` namespace.
    """
    base = _IMAGE_NAMES[module]
    if registry is None:
        return f"{DEFAULT_REGISTRY}/{base}:{tag}"
    return f"{registry.address}/microsoft/{base}:{tag}"


def _docker_module(image: str, create_options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "type": "docker",
        "settings": {
            "image": image,
            "createOptions": json.dumps(create_options) if create_options else "",
        },
    }


def build_modules_content(
    tag: str,
    registry: Optional[RegistryCredentials] = None,
    include_workload: bool = True,
) -> Dict[str, Any]:
    registry_credentials: Dict[str, Any] = {}
    if registry is not None:
        registry_credentials["registry"] = {
            "address": registry.address,
            "username": registry.user,
            "password": registry.password,
        }

    edge_hub = _docker_module(image_name(EDGE_HUB, tag, registry), _EDGE_HUB_CREATE_OPTIONS)
    edge_hub.update({"status": "running", "restartPolicy": "always"})

    modules: Dict[str, Any] = {}
    if include_workload:
        sensor = _docker_module(image_name(TEMP_SENSOR, tag, registry))
        sensor.update({"version": "1.0", "status": "running", "restartPolicy": "always"})
        modules[TEMP_SENSOR] = sensor

    content: Dict[str, Any] = {
        "$edgeAgent": {
            "properties.desired": {
                "schemaVersion": "1.0",
                "runtime": {
                    "type": "docker",
                    "settings": {
                        "minDockerVersion": "v1.25",
                        "loggingOptions": "",
                        "registryCredentials": registry_credentials,
                    },
                },
                "systemModules": {
                    EDGE_AGENT: _docker_module(image_name(EDGE_AGENT, tag, registry)),
                    EDGE_HUB: edge_hub,
                },
                "modules": modules,
            }
        },
        "$edgeHub": {
            "properties.desired": {
                "schemaVersion": "1.0",
                "routes": {"route": "FROM /messages/* INTO $upstream"},
                "storeAndForwardConfiguration": {"timeToLiveSecs": 7200},
            }
        },
    }
    if include_workload:
        content[TEMP_SENSOR] = {"properties.desired": {}}
    return content
