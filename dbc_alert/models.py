"""Data models for the DBC alert bot."""
from dataclasses import dataclass
from typing import Any, Optional

NO_MATCH = "no-match"


@dataclass(frozen=True)
class StreamEvent:
    """One instruction observation delivered by the Bitquery stream."""
    accounts: list[str]
    signature: str = ""
    block_time: Optional[str] = None
    method: Optional[str] = None

    @classmethod
    def from_instruction(cls, item: dict) -> "StreamEvent":
        """Build an event from one element of `Solana.Instructions`.

        Missing sections are treated as empty; accounts without an address
        are dropped rather than kept as null entries.
        """
        instruction = _section(item, "Instruction")
        transaction = _section(item, "Transaction")
        block = _section(item, "Block")

        raw_accounts = instruction.get("Accounts") or []
        if not isinstance(raw_accounts, list):
            raw_accounts = []

        accounts = []
        for account in raw_accounts:
            if isinstance(account, dict) and account.get("Address"):
                accounts.append(str(account["Address"]))

        return cls(
            accounts=accounts,
            signature=str(transaction.get("Signature") or ""),
            block_time=block.get("Time"),
            method=instruction.get("Method"),
        )


def _section(item: dict, key: str) -> dict[str, Any]:
    value = item.get(key)
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class MatchResult:
    """Outcome of running the suffix matcher over an event's accounts."""
    matches: list[str]
    mint: Optional[str]
    pool: Optional[str]

    @property
    def matched(self) -> bool:
        return bool(self.matches)

    @property
    def found_by(self) -> str:
        return ",".join(self.matches) if self.matches else NO_MATCH


@dataclass
class EventRecord:
    """A row of the `events` audit log."""
    mint: Optional[str]
    pool: Optional[str]
    signature: str
    found_by: str
    matched_team: str = ""
    id: Optional[int] = None
    created_at: Optional[str] = None
