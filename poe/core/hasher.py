"""
Canonical Hashing

Deterministic serialization and SHA-256 hashing for the event journal
and for signed calls.
Same input -> same hash.

CANONICAL SERIALIZATION RULES:
1. Version: "__canon_v" injected into every canonical output
2. Dictionary keys: sorted recursively, must be strings
3. Nulls: omitted entirely
4. Bytes: "0x" + lowercase hex (claims are raw bytes)
5. Enums: string value (not name)
6. Integers and booleans: JSON numbers / true / false
7. Floats: BANNED
8. Datetimes: must be timezone-aware; ISO 8601 UTC with microseconds, Z suffix
9. JSON output: no whitespace, sorted keys, ASCII only
10. Top-level: must be a dict
"""

import hashlib
import hmac
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class CanonicalSerializationError(Exception):
    """Raised when data cannot be canonically serialized."""
    pass


class Hasher:
    """
    Canonical serialization and hashing.

    If serialization rules ever change, bump SERIALIZATION_VERSION.
    """

    SERIALIZATION_VERSION = 1

    @classmethod
    def _serialize_value(cls, value: Any, path: str = "") -> Any:
        if value is None:
            return None

        # Bytes before everything else: bytes are not str
        if isinstance(value, (bytes, bytearray, memoryview)):
            return "0x" + bytes(value).hex()

        if isinstance(value, Enum):
            return value.value

        if isinstance(value, bool):
            return value

        if isinstance(value, int):
            return value

        if isinstance(value, float):
            raise CanonicalSerializationError(
                f"Cannot serialize float at {path}. "
                "Floats are banned in canonical payloads."
            )

        if isinstance(value, str):
            return value

        if isinstance(value, datetime):
            if value.tzinfo is None:
                raise CanonicalSerializationError(
                    f"Datetime at {path} is timezone-naive."
                )
            utc_dt = value.astimezone(timezone.utc)
            return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_dt.microsecond:06d}Z"

        if isinstance(value, (list, tuple)):
            return [
                cls._serialize_value(v, f"{path}[{i}]")
                for i, v in enumerate(value)
            ]

        if isinstance(value, dict):
            return cls._to_canonical_dict(value, path)

        if hasattr(value, "model_dump"):
            return cls._to_canonical_dict(value.model_dump(mode="python", by_alias=True), path)

        raise CanonicalSerializationError(
            f"Cannot serialize {type(value).__name__} at {path}. "
            "Only JSON-compatible types and bytes are allowed."
        )

    @classmethod
    def _to_canonical_dict(cls, data: dict[str, Any], path: str = "") -> dict[str, Any]:
        result = {}
        for key in data.keys():
            if not isinstance(key, str):
                raise CanonicalSerializationError(
                    f"Dictionary key at {path} must be string, "
                    f"got {type(key).__name__}"
                )

        for key in sorted(data.keys()):
            key_path = f"{path}.{key}" if path else key
            serialized = cls._serialize_value(data[key], key_path)
            if serialized is not None:
                result[key] = serialized

        return result

    @classmethod
    def canonicalize(cls, data: dict[str, Any] | Any) -> str:
        """
        Convert data to the canonical JSON string.

        Pydantic models are dumped by alias, so ClaimTransferred.from_
        canonicalizes as "from".
        """
        if hasattr(data, "model_dump"):
            data = data.model_dump(mode="python", by_alias=True)

        if not isinstance(data, dict):
            raise CanonicalSerializationError(
                f"Top-level canonicalization requires a dict/object, "
                f"got {type(data).__name__}."
            )

        canonical_dict = cls._to_canonical_dict(data)
        canonical_dict = {"__canon_v": cls.SERIALIZATION_VERSION, **canonical_dict}

        return json.dumps(
            canonical_dict,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )

    @classmethod
    def hash_data(cls, data: dict[str, Any] | Any) -> str:
        """Hex SHA-256 of the canonical form (64 lowercase chars)."""
        canonical = cls.canonicalize(data)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def hash_event(
        cls,
        payload: dict[str, Any],
        previous_hash: str | None = None,
    ) -> str:
        """
        Hash an event with chain linkage.

        FORMAT:
        - Genesis: SHA256(canonical_payload)
        - Chained: SHA256(previous_hash + ":" + canonical_payload)
        """
        canonical_payload = cls.canonicalize(payload)

        if previous_hash is None:
            chain_input = canonical_payload
        else:
            if len(previous_hash) != 64 or not all(
                c in "0123456789abcdef" for c in previous_hash.lower()
            ):
                raise CanonicalSerializationError(
                    f"Invalid previous_hash format: {previous_hash}. "
                    "Must be 64 hex characters."
                )
            chain_input = f"{previous_hash.lower()}:{canonical_payload}"

        return hashlib.sha256(chain_input.encode("utf-8")).hexdigest()

    @classmethod
    def verify_chain(
        cls,
        payload: dict[str, Any],
        expected_hash: str,
        previous_hash: str | None = None,
    ) -> bool:
        """True if payload + previous_hash hashes to expected_hash."""
        try:
            computed = cls.hash_event(payload, previous_hash)
        except CanonicalSerializationError:
            return False
        return hmac.compare_digest(computed, expected_hash.lower())
