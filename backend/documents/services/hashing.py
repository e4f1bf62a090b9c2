"""
SHA256 helpers shared by document intake, artifact finalization and the
tamper-evident hashes on ledger events.
"""

import hashlib
import json


class HashingService:
    """Service for file and data hashing."""

    @staticmethod
    def compute_bytes_sha256(data: bytes) -> str:
        """Hexadecimal SHA256 of a bytes payload."""
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def compute_json_sha256(data_dict):
        """
        Compute SHA256 hash of a dictionary (stable JSON serialization).

        Keys are sorted so the same data always produces the same hash.
        """
        json_str = json.dumps(data_dict, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()
