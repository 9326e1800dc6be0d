"""
Manifest Schema Validation Package

Provides Pydantic models for validating sample manifests, drum machine
alias files and soundfont zones downloaded from remote hosts.

Usage:
    from strudel_samples.schemas import validate_manifest

    try:
        manifest = validate_manifest(json_data)
    except ValidationError as e:
        print(f"Validation failed: {e}")
"""

from .manifest_schema import (
    SampleManifest,
    AliasManifest,
    SoundfontZoneSchema,
    validate_manifest,
    validate_aliases,
)

__all__ = [
    'SampleManifest',
    'AliasManifest',
    'SoundfontZoneSchema',
    'validate_manifest',
    'validate_aliases',
]
