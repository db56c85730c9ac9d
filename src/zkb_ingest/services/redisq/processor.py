"""
Killmail Processing.

Validates ESI killmail records and splits them into a header row and
participant rows for the killmail store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ...core.errors import KillmailValidationError
from ...core.logging import get_logger
from ..killmail_store.protocol import KillmailHeader, ParsedKillmail, Participant

logger = get_logger(__name__)

ENTITY_FIELDS = ("character_id", "corporation_id", "alliance_id", "ship_type_id")


def parse_killmail_time(value: Any) -> datetime:
    """
    Parse an ESI timestamp.

    ESI returns ISO format: 2024-01-15T12:34:56Z

    Raises:
        ValueError: Not a string or not ISO-8601
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"not a timestamp: {value!r}")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _is_int(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is never a valid id or amount
    return isinstance(value, int) and not isinstance(value, bool)


def _require_int(data: dict[str, Any], key: str, kill_id: int | None, where: str) -> int:
    value = data.get(key)
    if not _is_int(value):
        raise KillmailValidationError(
            f"{where}.{key} must be an integer, got {value!r}", kill_id=kill_id, field=key
        )
    return value


def _require_damage(data: dict[str, Any], key: str, kill_id: int, where: str) -> int:
    value = _require_int(data, key, kill_id, where)
    if value < 0:
        raise KillmailValidationError(
            f"{where}.{key} must be non-negative, got {value}", kill_id=kill_id, field=key
        )
    return value


def _optional_ids(data: dict[str, Any], kill_id: int, where: str) -> dict[str, int | None]:
    ids: dict[str, int | None] = {}
    for key in ENTITY_FIELDS:
        value = data.get(key)
        if value is not None and not _is_int(value):
            raise KillmailValidationError(
                f"{where}.{key} must be an integer or absent, got {value!r}",
                kill_id=kill_id,
                field=key,
            )
        ids[key] = value
    return ids


def parse_killmail(record: Any, expected_kill_id: int | None = None) -> ParsedKillmail:
    """
    Parse an ESI killmail record into a header and ordered participants.

    The victim comes first, followed by the attackers in source order.
    Exactly one participant must be flagged victim: the victim sub-object
    counts as one, and an attacker entry carrying a truthy ``is_victim``
    counts as another.

    Args:
        record: Full killmail data from ESI /killmails/{id}/{hash}/
        expected_kill_id: The id the record was fetched for, if known

    Returns:
        ParsedKillmail ready for the store

    Raises:
        KillmailValidationError: Any required field missing or invalid
    """
    if not isinstance(record, dict):
        raise KillmailValidationError("killmail record is not an object", kill_id=expected_kill_id)

    kill_id = _require_int(record, "killmail_id", expected_kill_id, "killmail")
    if expected_kill_id is not None and kill_id != expected_kill_id:
        raise KillmailValidationError(
            f"record is killmail {kill_id}, expected {expected_kill_id}",
            kill_id=expected_kill_id,
            field="killmail_id",
        )

    killmail_time = record.get("killmail_time")
    try:
        parse_killmail_time(killmail_time)
    except ValueError as e:
        raise KillmailValidationError(
            f"killmail.killmail_time is not ISO-8601: {killmail_time!r}",
            kill_id=kill_id,
            field="killmail_time",
        ) from e

    solar_system_id = _require_int(record, "solar_system_id", kill_id, "killmail")

    victim = record.get("victim")
    if not isinstance(victim, dict):
        raise KillmailValidationError("killmail.victim is missing", kill_id=kill_id, field="victim")

    attackers = record.get("attackers")
    if not isinstance(attackers, list):
        raise KillmailValidationError(
            "killmail.attackers must be a list", kill_id=kill_id, field="attackers"
        )

    participants = [
        Participant(
            killmail_id=kill_id,
            damage=_require_damage(victim, "damage_taken", kill_id, "victim"),
            is_victim=True,
            **_optional_ids(victim, kill_id, "victim"),
        )
    ]

    victim_flags = 1
    for index, attacker in enumerate(attackers):
        where = f"attackers[{index}]"
        if not isinstance(attacker, dict):
            raise KillmailValidationError(f"{where} is not an object", kill_id=kill_id)
        if attacker.get("is_victim"):
            victim_flags += 1
        participants.append(
            Participant(
                killmail_id=kill_id,
                damage=_require_damage(attacker, "damage_done", kill_id, where),
                is_victim=False,
                **_optional_ids(attacker, kill_id, where),
            )
        )

    if victim_flags != 1:
        raise KillmailValidationError(
            f"expected exactly one victim, found {victim_flags}",
            kill_id=kill_id,
            field="is_victim",
        )

    header = KillmailHeader(
        killmail_id=kill_id,
        killmail_time=killmail_time,
        solar_system_id=solar_system_id,
    )
    logger.debug("Parsed killmail %d: %d attackers", kill_id, len(attackers))
    return ParsedKillmail(header=header, participants=tuple(participants))
