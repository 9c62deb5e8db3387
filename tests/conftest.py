"""Shared test fixtures for protorules.

Fixtures defined here are available to all tests in the suite without
needing an explicit import. Add project-wide fixtures here; keep
domain-specific fixtures close to the tests that use them.
"""
from __future__ import annotations

from collections.abc import Iterator

import pytest

from protorules.schema import Schema, load_schema
from protorules.schema.wkt import Timestamp
from protorules.validator import Validator, clear_cache

# 2024-05-01T12:00:00Z
FIXED_NOW = Timestamp(seconds=1714564800)

SAMPLE_SCHEMA = """
package: acme.v1
enums:
  Status: {STATUS_UNSPECIFIED: 0, STATUS_ACTIVE: 1, STATUS_BANNED: 2}
messages:
  Address:
    fields:
      city: {type: string, rules: {string: {min_len: 1}}}
      zip: {type: string, rules: {string: {pattern: "^[0-9]{5}$"}}}
  User:
    fields:
      email: {type: string, rules: {required: true, string: {email: true}}}
      nickname: {type: string, optional: true, rules: {string: {max_len: 8}}}
      age: {type: uint32, optional: true, rules: {uint32: {lte: 150}}}
      status: {type: Status, rules: {enum: {defined_only: true, not_in: [0]}}}
      address: {type: Address}
      tags: {type: string, repeated: true, rules: {repeated: {unique: true, items: {string: {min_len: 2}}}}}
      labels:
        type: "map<string, string>"
        rules: {map: {keys: {string: {max_len: 4}}, values: {string: {min_len: 1}}}}
      created_at: {type: google.protobuf.Timestamp}
    rules:
      cel:
        - id: created_in_past
          expression: "!has(this.created_at) || this.created_at < now"
          message: "created_at must be in the past"
"""


@pytest.fixture()
def package_name() -> str:
    """Return the importable package name for assertions."""
    return "protorules"


@pytest.fixture()
def expected_version() -> str:
    """Return the current expected version string.

    Update this fixture when cutting a release so that the version
    test immediately catches stale ``__version__`` values.
    """
    return "0.1.0"


@pytest.fixture()
def schema() -> Schema:
    """Return the sample ``acme.v1`` schema."""
    return load_schema(SAMPLE_SCHEMA)


@pytest.fixture()
def validator(schema: Schema) -> Validator:
    """Return a validator for the sample schema with a fixed clock."""
    return Validator(schema, now=lambda: FIXED_NOW)


@pytest.fixture()
def valid_user() -> dict[str, object]:
    """Return a document that satisfies every rule of ``acme.v1.User``."""
    return {
        "email": "ada@example.com",
        "status": "STATUS_ACTIVE",
        "tags": ["ops", "dev"],
        "labels": {"env": "prod"},
        "createdAt": "2024-01-01T00:00:00Z",
    }


@pytest.fixture(autouse=True)
def _fresh_compile_cache() -> Iterator[None]:
    """Isolate tests from each other's compiled schemas."""
    clear_cache()
    yield
    clear_cache()
