"""
Manifest Validation - JSON Schema validation of tenant and datastore manifests.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

logger = logging.getLogger(__name__)

_METADATA = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "namespace": {"type": "string", "minLength": 1},
    },
}

_ADDON = {
    "type": ["object", "null"],
    "properties": {
        "imageRepository": {"type": "string"},
        "imageTag": {"type": "string"},
    },
}

_CHECKSUM = {"type": "object", "properties": {"checksum": {"type": "string"}}}

TENANT_CONTROL_PLANE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["metadata"],
    "properties": {
        "kind": {"const": "TenantControlPlane"},
        "metadata": _METADATA,
        "spec": {
            "type": "object",
            "properties": {
                "dataStore": {"type": "string"},
                "kubernetes": {
                    "type": "object",
                    "properties": {"version": {"type": "string", "pattern": "^v\\d+"}},
                },
                "networkProfile": {
                    "type": "object",
                    "properties": {
                        "address": {"type": "string"},
                        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                        "serviceCidr": {"type": "string"},
                        "podCidr": {"type": "string"},
                        "dnsServiceIPs": {
                            "type": "array",
                            "items": {"type": "string"},
                            "minItems": 1,
                        },
                    },
                },
                "addons": {
                    "type": ["object", "null"],
                    "properties": {"coreDNS": _ADDON, "kubeProxy": _ADDON},
                },
            },
        },
        "status": {
            "type": "object",
            "properties": {
                "storage": {
                    "type": "object",
                    "properties": {
                        "driver": {"type": "string"},
                        "dataStoreName": {"type": "string"},
                        "config": {
                            "type": "object",
                            "properties": {
                                "secretName": {"type": "string"},
                                "checksum": {"type": "string"},
                            },
                        },
                        "setup": {
                            "type": "object",
                            "properties": {
                                "schema": {"type": "string"},
                                "user": {"type": "string"},
                                "checksum": {"type": "string"},
                            },
                        },
                    },
                },
                "addons": {
                    "type": "object",
                    "properties": {"coreDNS": _CHECKSUM, "kubeProxy": _CHECKSUM},
                },
            },
        },
    },
}

DATASTORE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["metadata", "spec"],
    "properties": {
        "kind": {"const": "DataStore"},
        "metadata": _METADATA,
        "spec": {
            "type": "object",
            "required": ["driver", "endpoints"],
            "properties": {
                "driver": {"enum": ["PostgreSQL"]},
                "endpoints": {
                    "type": "array",
                    "items": {"type": "string", "minLength": 1},
                    "minItems": 1,
                },
                "basicAuth": {
                    "type": "object",
                    "properties": {
                        "username": {"type": "string"},
                        "password": {"type": "string"},
                    },
                },
            },
        },
    },
}


def _location(error: ValidationError) -> str:
    # json_path is "$" for the root, "$.spec.endpoints[0]" below it
    return error.json_path[2:] or "(root)"


def validate_manifest(
    manifest: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a manifest against a JSON Schema.

    Returns:
        Tuple of (is_valid, error_message); every violation is reported,
        ordered by location.
    """
    errors = sorted(Draft7Validator(schema).iter_errors(manifest), key=_location)
    if not errors:
        return True, None

    message = "; ".join(f"{_location(e)}: {e.message}" for e in errors)
    logger.debug(f"Manifest rejected: {message}")
    return False, message
