"""
Event parser for Potlock contract logs.

Turns the log lines of one receipt execution outcome into typed donation and
payout values. No I/O and no state across calls, so one parser instance can be
shared freely.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from potlock_indexer.core.config import NearConfig, settings
from potlock_indexer.core.exceptions import ParseError
from potlock_indexer.models.donation import DonationType


logger = structlog.get_logger(__name__)

# Amounts are u128 on chain; ids must fit the String(64) columns
MAX_AMOUNT = 2 ** 128 - 1
MAX_ID_LENGTH = 64


# Which Account buckets a donation type feeds. Every DonationType must appear
# in both maps; a recipient bucket of None means the donation has no personal
# recipient to credit.
DONOR_BUCKETS: Dict[DonationType, str] = {
    DonationType.DIRECT: "direct",
    DonationType.POT: "pot",
    DonationType.POT_PROJECT: "pot",
    DonationType.CAMPAIGN: "campaign",
}

RECIPIENT_BUCKETS: Dict[DonationType, Optional[str]] = {
    DonationType.DIRECT: "direct",
    DonationType.POT: None,
    DonationType.POT_PROJECT: "pot",
    DonationType.CAMPAIGN: "campaign",
}


def ms_to_datetime(value_ms: Optional[int]) -> Optional[datetime]:
    """Convert a millisecond epoch timestamp to an aware UTC datetime."""
    if value_ms is None:
        return None
    seconds, millis = divmod(int(value_ms), 1000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=millis * 1000)


@dataclass(frozen=True)
class ParsedDonation:
    """Donation event decoded from a Potlock log line."""
    type: DonationType
    donor_id: str
    amount: str  # yoctoNEAR as a decimal string
    transaction_hash: str
    block_height: int
    ft_id: str = NearConfig.NATIVE_TOKEN_ID
    recipient_id: Optional[str] = None
    project_id: Optional[str] = None
    pot_id: Optional[str] = None
    campaign_id: Optional[str] = None
    message: Optional[str] = None
    donated_at_ms: Optional[int] = None
    protocol_fee: Optional[str] = None
    referrer_id: Optional[str] = None
    referrer_fee: Optional[str] = None
    net_amount: Optional[str] = None
    chef_id: Optional[str] = None
    chef_fee: Optional[str] = None

    @property
    def donated_at(self) -> Optional[datetime]:
        return ms_to_datetime(self.donated_at_ms)

    @property
    def target_id(self) -> Optional[str]:
        return self.recipient_id or self.pot_id or self.campaign_id


@dataclass(frozen=True)
class ParsedPayout:
    """Pot payout event decoded from a Potlock log line."""
    recipient_id: str
    amount: str
    transaction_hash: str
    block_height: int
    pot_id: Optional[str] = None
    ft_id: str = NearConfig.NATIVE_TOKEN_ID
    paid_at_ms: Optional[int] = None

    @property
    def paid_at(self) -> Optional[datetime]:
        return ms_to_datetime(self.paid_at_ms)


@dataclass
class ParsedOutcome:
    """Everything extracted from one receipt execution outcome."""
    donations: List[ParsedDonation] = field(default_factory=list)
    payout: Optional[ParsedPayout] = None
    warnings: List[str] = field(default_factory=list)


def _is_digits(value: str) -> bool:
    # str.isdigit alone also accepts non-ASCII digits such as superscripts
    return value.isascii() and value.isdigit()


def _string(
    data: Dict[str, Any],
    key: str,
    required: bool = False,
    max_length: Optional[int] = MAX_ID_LENGTH
) -> Optional[str]:
    value = data.get(key)
    if value is None or value == "":
        if required:
            raise ParseError(f"Missing required field: {key}", {"field": key})
        return None
    if not isinstance(value, str):
        raise ParseError(f"Field {key} must be a string", {"field": key, "value": value})
    if max_length is not None and len(value) > max_length:
        raise ParseError(f"Field {key} is too long", {"field": key, "length": len(value)})
    return value


def _base_units(data: Dict[str, Any], key: str, required: bool = False) -> Optional[str]:
    """Read an amount as a decimal string of base units, never as a float."""
    value = data.get(key)
    if value is None:
        if required:
            raise ParseError(f"Missing required field: {key}", {"field": key})
        return None
    if isinstance(value, bool):
        raise ParseError(f"Field {key} is not an amount", {"field": key, "value": value})
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not _is_digits(value):
        raise ParseError(f"Field {key} is not a base-unit amount", {"field": key, "value": value})
    if int(value) > MAX_AMOUNT:
        raise ParseError(f"Field {key} exceeds the u128 range", {"field": key, "value": value})
    return value


def _millis(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ParseError(f"Field {key} is not a timestamp", {"field": key, "value": value})
    if isinstance(value, str) and _is_digits(value):
        value = int(value)
    if not isinstance(value, int):
        raise ParseError(f"Field {key} is not a timestamp", {"field": key, "value": value})
    try:
        ms_to_datetime(value)
    except (OverflowError, ValueError, OSError) as e:
        raise ParseError(f"Field {key} is out of range", {"field": key, "value": value}) from e
    return value


def _token(data: Dict[str, Any]) -> str:
    return _string(data, "ft_id") or NearConfig.NATIVE_TOKEN_ID


def _parse_direct(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "donor_id": _string(data, "donor_id", required=True),
        "recipient_id": _string(data, "recipient_id", required=True),
        "amount": _base_units(data, "amount", required=True),
        "ft_id": _token(data),
        "message": _string(data, "message", max_length=None),
        "donated_at_ms": _millis(data, "donated_at_ms"),
        "protocol_fee": _base_units(data, "protocol_fee"),
        "referrer_id": _string(data, "referrer_id"),
        "referrer_fee": _base_units(data, "referrer_fee"),
    }


def _parse_pot(data: Dict[str, Any]) -> Dict[str, Any]:
    amount_key = "total_amount" if data.get("total_amount") is not None else "amount"
    return {
        "donor_id": _string(data, "donor_id", required=True),
        "pot_id": _string(data, "pot_id", required=True),
        "amount": _base_units(data, amount_key, required=True),
        "net_amount": _base_units(data, "net_amount"),
        "ft_id": _token(data),
        "message": _string(data, "message", max_length=None),
        "donated_at_ms": _millis(data, "donated_at_ms"),
        "protocol_fee": _base_units(data, "protocol_fee"),
        "referrer_id": _string(data, "referrer_id"),
        "referrer_fee": _base_units(data, "referrer_fee"),
        "chef_id": _string(data, "chef_id"),
        "chef_fee": _base_units(data, "chef_fee"),
    }


def _parse_pot_project(data: Dict[str, Any]) -> Dict[str, Any]:
    project_id = _string(data, "project_id", required=True)
    return {
        "donor_id": _string(data, "donor_id", required=True),
        "recipient_id": project_id,
        "project_id": project_id,
        "pot_id": _string(data, "pot_id"),
        "amount": _base_units(data, "amount", required=True),
        "ft_id": _token(data),
        "donated_at_ms": _millis(data, "donated_at_ms"),
        "referrer_id": _string(data, "referrer_id"),
        "referrer_fee": _base_units(data, "referrer_fee"),
    }


def _parse_campaign(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "donor_id": _string(data, "donor_id", required=True),
        "campaign_id": _string(data, "campaign_id", required=True),
        "amount": _base_units(data, "amount", required=True),
        "ft_id": _token(data),
        "message": _string(data, "message", max_length=None),
        "donated_at_ms": _millis(data, "donated_at_ms"),
        "protocol_fee": _base_units(data, "protocol_fee"),
        "referrer_id": _string(data, "referrer_id"),
        "referrer_fee": _base_units(data, "referrer_fee"),
    }


DONATION_PARSERS: Dict[DonationType, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    DonationType.DIRECT: _parse_direct,
    DonationType.POT: _parse_pot,
    DonationType.POT_PROJECT: _parse_pot_project,
    DonationType.CAMPAIGN: _parse_campaign,
}


class EventParser:
    """
    Parser for Potlock NEP-297 events.

    Only `EVENT_JSON:` log lines whose standard is the configured namespace are
    looked at. A malformed line is skipped with a warning and never stops the
    remaining lines from being parsed.
    """

    def __init__(self, standard: Optional[str] = None):
        """Initialize the event parser."""
        self.standard = standard or settings.event_standard
        self.logger = logger.bind(service="event_parser")

    def parse_outcome(
        self,
        outcome: Dict[str, Any],
        block_height: int,
        transaction_hash: str
    ) -> ParsedOutcome:
        """
        Parse all Potlock events of one receipt execution outcome.

        Args:
            outcome: Execution outcome with a `logs` list
            block_height: Height of the block the receipt executed in
            transaction_hash: Idempotency key for the produced events

        Returns:
            Parsed donations, the first payout found, and warnings for skipped lines
        """
        result = ParsedOutcome()

        for index, log_line in enumerate(outcome.get("logs") or []):
            if not isinstance(log_line, str) or not log_line.startswith(NearConfig.EVENT_LOG_PREFIX):
                continue

            try:
                event = self._decode_event(log_line)
            except ParseError as e:
                self._record_warning(result, transaction_hash, index, e)
                continue

            if event is None:
                continue

            event_name = event.get("event")
            items = event.get("data")
            if not isinstance(items, list):
                items = [items]

            for data in items:
                try:
                    if not isinstance(data, dict):
                        raise ParseError("Event data is not an object", {"event": event_name})

                    if event_name == NearConfig.PAYOUT_EVENT:
                        if result.payout is None:
                            result.payout = self._build_payout(data, transaction_hash, block_height)
                        continue

                    donation_type = self._donation_type(event_name)
                    if donation_type is None:
                        self.logger.debug("Ignoring unknown Potlock event", event=event_name)
                        break

                    kwargs = DONATION_PARSERS[donation_type](data)
                    result.donations.append(ParsedDonation(
                        type=donation_type,
                        transaction_hash=transaction_hash,
                        block_height=block_height,
                        **kwargs
                    ))
                except ParseError as e:
                    self._record_warning(result, transaction_hash, index, e)
                except (ValueError, OverflowError, TypeError) as e:
                    error = ParseError(f"Invalid event field: {e}", {"event": event_name})
                    self._record_warning(result, transaction_hash, index, error)

        if result.donations or result.payout:
            self.logger.debug(
                "Parsed receipt events",
                tx_hash=transaction_hash,
                donations=len(result.donations),
                payout=result.payout is not None
            )

        return result

    def parse_execution_outcome(
        self,
        outcome: Dict[str, Any],
        block_height: int,
        transaction_hash: str
    ) -> List[ParsedDonation]:
        """Parse only the donations of an execution outcome."""
        return self.parse_outcome(outcome, block_height, transaction_hash).donations

    def parse_pot_payout(
        self,
        outcome: Dict[str, Any],
        block_height: int,
        transaction_hash: str
    ) -> Optional[ParsedPayout]:
        """Parse only the payout of an execution outcome."""
        return self.parse_outcome(outcome, block_height, transaction_hash).payout

    def _decode_event(self, log_line: str) -> Optional[Dict[str, Any]]:
        """Decode one EVENT_JSON line, returning None for foreign standards."""
        raw = log_line[len(NearConfig.EVENT_LOG_PREFIX):]
        try:
            event = json.loads(raw)
        except ValueError as e:
            raise ParseError(f"Invalid event JSON: {e}", {"log": log_line[:200]}) from e

        if not isinstance(event, dict):
            raise ParseError("Event JSON is not an object", {"log": log_line[:200]})

        if event.get("standard") != self.standard:
            self.logger.debug("Skipping foreign event standard", standard=event.get("standard"))
            return None

        if not isinstance(event.get("event"), str):
            raise ParseError("Event name is missing", {"log": log_line[:200]})

        return event

    @staticmethod
    def _donation_type(event_name: str) -> Optional[DonationType]:
        type_name = NearConfig.DONATION_EVENTS.get(event_name)
        return DonationType(type_name) if type_name else None

    @staticmethod
    def _build_payout(
        data: Dict[str, Any],
        transaction_hash: str,
        block_height: int
    ) -> ParsedPayout:
        return ParsedPayout(
            pot_id=_string(data, "pot_id"),
            recipient_id=_string(data, "recipient_id", required=True),
            amount=_base_units(data, "amount", required=True),
            ft_id=_token(data),
            paid_at_ms=_millis(data, "paid_at_ms"),
            transaction_hash=transaction_hash,
            block_height=block_height,
        )

    def _record_warning(
        self,
        result: ParsedOutcome,
        transaction_hash: str,
        log_index: int,
        error: ParseError
    ) -> None:
        warning = f"log {log_index}: {error.message}"
        result.warnings.append(warning)
        self.logger.warning(
            "Skipping malformed Potlock event",
            tx_hash=transaction_hash,
            log_index=log_index,
            error=error.message,
            details=error.details
        )
