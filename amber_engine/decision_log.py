"""Tamper-evident shift decision log.

Each committed decision is archived as an entry carrying:
- prev_hash: entry_hash of the previous entry (hex)
- record_hash: SHA256 of the canonical record JSON (hex)
- entry_hash: SHA256 over (prev_hash, record_hash, ts) (hex)
- signature_b64: optional Ed25519 signature over the entry payload

The log lives in memory. Writing it into a save file is the save system's
job; ``to_jsonl`` and ``verify_entries`` are what that system needs.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .consequence import ConsequenceType
from .encounter import DecisionRecord
from .errors import AMB_E_LOG_SIGNER, amber_error
from .protocol import Decision

logger = logging.getLogger("amber_engine")

LOG_VERSION = "AMBER_DECISION_LOG_V1"
GENESIS_HASH = "0" * 64


def canonical_json_dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _safe_hash_encode(components: List[str]) -> bytes:
    """Length-prefixed encoding so no component can forge a boundary."""
    result = b""
    for component in components:
        encoded = component.encode("utf-8")
        result += len(encoded).to_bytes(8, byteorder="big") + encoded
    return result


@dataclass
class LogSigner:
    """Ed25519 signer for decision log entries."""

    key_id: str
    private_key: Ed25519PrivateKey

    @classmethod
    def generate(cls, key_id: str) -> "LogSigner":
        return cls(key_id=key_id, private_key=Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, key_id: str, seed: bytes) -> "LogSigner":
        if len(seed) != 32:
            raise amber_error(AMB_E_LOG_SIGNER, f"seed must be 32 bytes, got {len(seed)}")
        return cls(key_id=key_id, private_key=Ed25519PrivateKey.from_private_bytes(seed))

    @property
    def public_key_bytes(self) -> bytes:
        return self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)


@dataclass(frozen=True)
class LogEntry:
    version: str
    ts_utc: str
    prev_hash: str
    record: Dict[str, Any]
    record_hash: str
    entry_hash: str
    key_id: str = ""
    signature_b64: str = ""

    def to_json(self) -> str:
        return json.dumps(
            {
                "version": self.version,
                "ts_utc": self.ts_utc,
                "prev_hash": self.prev_hash,
                "record": self.record,
                "record_hash": self.record_hash,
                "entry_hash": self.entry_hash,
                "key_id": self.key_id,
                "signature_b64": self.signature_b64,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, line: str) -> "LogEntry":
        d = json.loads(line)
        return cls(
            version=str(d.get("version")),
            ts_utc=str(d.get("ts_utc")),
            prev_hash=str(d.get("prev_hash")),
            record=d.get("record"),
            record_hash=str(d.get("record_hash")),
            entry_hash=str(d.get("entry_hash")),
            key_id=str(d.get("key_id", "")),
            signature_b64=str(d.get("signature_b64", "")),
        )


def _entry_payload(ts: str, prev_hash: str, record_hash: str, entry_hash: str) -> bytes:
    return _safe_hash_encode([LOG_VERSION, ts, prev_hash, record_hash, entry_hash])


@dataclass
class ShiftTotals:
    decisions: int = 0
    approved: int = 0
    denied: int = 0
    correct: int = 0
    credits_penalty: int = 0
    infractions: int = 0
    by_type: Dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in ConsequenceType})

    @property
    def accuracy(self) -> float:
        return self.correct / self.decisions if self.decisions else 0.0


class ShiftDecisionLog:
    """Append-only hash-chained log of one shift's decisions."""

    def __init__(self, shift_id: str, signer: Optional[LogSigner] = None):
        self.shift_id = shift_id
        self.signer = signer
        self._entries: List[LogEntry] = []
        self._last_hash = GENESIS_HASH
        self._totals = ShiftTotals()

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    @property
    def totals(self) -> ShiftTotals:
        return self._totals

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, record: DecisionRecord) -> LogEntry:
        body = dict(record.as_dict(), shift_id=self.shift_id)
        ts = record.committed_at_utc
        record_hash = _sha256_hex(canonical_json_dumps(body).encode("utf-8"))
        entry_hash = _sha256_hex(_safe_hash_encode([self._last_hash, record_hash, ts]))

        key_id = ""
        sig_b64 = ""
        if self.signer is not None:
            sig = self.signer.sign(_entry_payload(ts, self._last_hash, record_hash, entry_hash))
            key_id = self.signer.key_id
            sig_b64 = base64.b64encode(sig).decode("ascii")

        entry = LogEntry(
            version=LOG_VERSION,
            ts_utc=ts,
            prev_hash=self._last_hash,
            record=body,
            record_hash=record_hash,
            entry_hash=entry_hash,
            key_id=key_id,
            signature_b64=sig_b64,
        )
        self._entries.append(entry)
        self._last_hash = entry_hash
        self._tally(record)
        return entry

    def _tally(self, record: DecisionRecord) -> None:
        t = self._totals
        c = record.consequence
        t.decisions += 1
        if record.decision is Decision.APPROVE:
            t.approved += 1
        else:
            t.denied += 1
        if c.decision_correct:
            t.correct += 1
        t.credits_penalty += c.credits_penalty
        t.infractions += c.infraction_count
        t.by_type[c.type.value] += 1

    def to_jsonl(self) -> str:
        return "".join(e.to_json() + "\n" for e in self._entries)

    def verify(self, public_key_hex: Optional[str] = None) -> Tuple[bool, str, int]:
        if public_key_hex is None and self.signer is not None:
            public_key_hex = self.signer.public_key_hex
        return verify_entries(self._entries, public_key_hex)


def verify_entries(entries: Iterable[LogEntry], public_key_hex: Optional[str] = None) -> Tuple[bool, str, int]:
    """Verify a chain of entries. Returns (ok, reason, count).

    When ``public_key_hex`` is given every entry must carry a valid signature.
    """
    public_key = None
    if public_key_hex:
        try:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        except ValueError:
            return False, "BAD_PUBLIC_KEY", 0

    prev = GENESIS_HASH
    count = 0
    for entry in entries:
        count += 1
        if entry.version != LOG_VERSION:
            return False, f"BAD_VERSION:{entry.version}", count
        if entry.prev_hash != prev:
            return False, "CHAIN_BROKEN", count
        if not isinstance(entry.record, dict):
            return False, "BAD_RECORD", count

        record_hash = _sha256_hex(canonical_json_dumps(entry.record).encode("utf-8"))
        if record_hash != entry.record_hash:
            return False, "RECORD_HASH_MISMATCH", count

        expected = _sha256_hex(_safe_hash_encode([prev, record_hash, entry.ts_utc]))
        if expected != entry.entry_hash:
            return False, "ENTRY_HASH_MISMATCH", count

        if public_key is not None:
            try:
                sig = base64.b64decode(entry.signature_b64, validate=True)
            except ValueError:
                return False, "BAD_SIGNATURE_ENCODING", count
            try:
                public_key.verify(sig, _entry_payload(entry.ts_utc, prev, record_hash, expected))
            except InvalidSignature:
                return False, "INVALID_SIGNATURE", count

        prev = expected

    logger.debug("Decision log verified: %d entries", count)
    return True, "OK", count
