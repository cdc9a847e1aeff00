"""
Test Potlock log parsing.
"""

from factories import BASE_TIME, direct_donation, event_log, near, to_ms

from potlock_indexer.models.donation import DonationType
from potlock_indexer.services.event_parser import (
    DONOR_BUCKETS,
    RECIPIENT_BUCKETS,
    EventParser,
    ms_to_datetime,
)


TX = "8HkT3XbqmfWvFzQ1"
HEIGHT = 120_000_000


def parse(*logs, parser=None):
    parser = parser or EventParser("potlock")
    return parser.parse_outcome({"logs": list(logs)}, HEIGHT, TX)


def test_direct_donation_mapping():
    """Test a direct donation with fees and referrer."""
    data = direct_donation(referrer="carol.near", referrer_fee="0.3", protocol_fee="0.2")
    data["message"] = "keep building"

    result = parse(event_log("donate", data))

    assert result.warnings == []
    assert result.payout is None
    assert len(result.donations) == 1

    donation = result.donations[0]
    assert donation.type is DonationType.DIRECT
    assert donation.donor_id == "alice.near"
    assert donation.recipient_id == "bob.near"
    assert donation.amount == near("10")
    assert donation.protocol_fee == near("0.2")
    assert donation.referrer_id == "carol.near"
    assert donation.referrer_fee == near("0.3")
    assert donation.message == "keep building"
    assert donation.ft_id == "near"
    assert donation.donated_at == BASE_TIME
    assert donation.transaction_hash == TX
    assert donation.block_height == HEIGHT
    assert donation.target_id == "bob.near"


def test_absent_optional_fields_stay_unset():
    """Test fees that are absent are not coerced to zero."""
    data = {"donor_id": "alice.near", "recipient_id": "bob.near", "amount": near("1")}

    donation = parse(event_log("donate", data)).donations[0]

    assert donation.protocol_fee is None
    assert donation.referrer_id is None
    assert donation.referrer_fee is None
    assert donation.donated_at is None
    assert donation.ft_id == "near"


def test_pot_donation_prefers_total_amount():
    """Test pot donations use total_amount and have no personal recipient."""
    data = {
        "donor_id": "alice.near",
        "pot_id": "round1.v1.potfactory.potlock.near",
        "total_amount": near("5"),
        "net_amount": near("4.5"),
        "chef_id": "chef.near",
        "chef_fee": near("0.25"),
        "donated_at_ms": to_ms(BASE_TIME),
    }

    donation = parse(event_log("pot_donate", data)).donations[0]

    assert donation.type is DonationType.POT
    assert donation.amount == near("5")
    assert donation.net_amount == near("4.5")
    assert donation.chef_id == "chef.near"
    assert donation.chef_fee == near("0.25")
    assert donation.recipient_id is None
    assert donation.target_id == "round1.v1.potfactory.potlock.near"


def test_pot_donation_falls_back_to_amount():
    data = {"donor_id": "alice.near", "pot_id": "pot.near", "amount": near("2")}

    donation = parse(event_log("pot_donate", data)).donations[0]

    assert donation.amount == near("2")


def test_pot_project_donation_credits_project():
    """Test the project of a pot project donation becomes its recipient."""
    data = {
        "donor_id": "alice.near",
        "project_id": "project.near",
        "pot_id": "pot.near",
        "amount": near("3"),
    }

    donation = parse(event_log("pot_project_donation", data)).donations[0]

    assert donation.type is DonationType.POT_PROJECT
    assert donation.recipient_id == "project.near"
    assert donation.project_id == "project.near"
    assert donation.pot_id == "pot.near"


def test_campaign_donation_mapping():
    data = {
        "donor_id": "alice.near",
        "campaign_id": "42",
        "amount": near("7"),
        "ft_id": "usdc.near",
    }

    donation = parse(event_log("campaign_donate", data)).donations[0]

    assert donation.type is DonationType.CAMPAIGN
    assert donation.campaign_id == "42"
    assert donation.recipient_id is None
    assert donation.ft_id == "usdc.near"


def test_malformed_line_does_not_hide_valid_events():
    """Test a truncated event line is skipped with a warning."""
    good = event_log("donate", direct_donation())
    truncated = good[:40]

    result = parse(truncated, good)

    assert len(result.donations) == 1
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("log 0:")


def test_missing_required_field_is_a_warning():
    data = direct_donation()
    del data["donor_id"]

    result = parse(event_log("donate", data), event_log("donate", direct_donation(donor="dave.near")))

    assert [d.donor_id for d in result.donations] == ["dave.near"]
    assert len(result.warnings) == 1
    assert "donor_id" in result.warnings[0]


def test_float_amount_is_rejected():
    """Test amounts must arrive as base-unit integers."""
    data = direct_donation()
    data["amount"] = 1.5

    result = parse(event_log("donate", data))

    assert result.donations == []
    assert len(result.warnings) == 1


def test_integer_amount_is_accepted():
    data = direct_donation()
    data["amount"] = 10 ** 24

    donation = parse(event_log("donate", data)).donations[0]

    assert donation.amount == str(10 ** 24)


def test_list_data_yields_every_donation():
    items = [direct_donation(recipient="bob.near"), direct_donation(recipient="erin.near")]

    result = parse(event_log("donate", items))

    assert [d.recipient_id for d in result.donations] == ["bob.near", "erin.near"]


def test_foreign_standard_and_plain_logs_are_ignored():
    """Test logs outside the configured namespace produce nothing."""
    result = parse(
        "Transfer 10 NEAR to bob.near",
        event_log("donate", direct_donation(), standard="nep171"),
        event_log("ft_transfer", {"amount": "1"}),
    )

    assert result.donations == []
    assert result.payout is None
    assert result.warnings == []


def test_configured_standard_is_used():
    parser = EventParser("potlock-testnet")

    result = parse(
        event_log("donate", direct_donation(), standard="potlock"),
        event_log("donate", direct_donation(donor="dave.near"), standard="potlock-testnet"),
        parser=parser,
    )

    assert [d.donor_id for d in result.donations] == ["dave.near"]


def test_pot_payout_first_one_wins():
    """Test a payout is extracted and only the first one is kept."""
    first = {"pot_id": "pot.near", "recipient_id": "bob.near", "amount": near("12"), "paid_at_ms": to_ms(BASE_TIME)}
    second = {"pot_id": "pot.near", "recipient_id": "erin.near", "amount": near("1")}

    result = parse(event_log("pot_payout", first), event_log("pot_payout", second))

    payout = result.payout
    assert payout is not None
    assert payout.recipient_id == "bob.near"
    assert payout.amount == near("12")
    assert payout.paid_at == BASE_TIME
    assert payout.transaction_hash == TX


def test_parsing_is_repeatable():
    logs = (event_log("donate", direct_donation()), "EVENT_JSON:{broken")
    parser = EventParser("potlock")

    assert parse(*logs, parser=parser) == parse(*logs, parser=parser)


def test_bucket_maps_cover_every_donation_type():
    assert set(DONOR_BUCKETS) == set(DonationType)
    assert set(RECIPIENT_BUCKETS) == set(DonationType)


def test_ms_to_datetime_keeps_milliseconds():
    moment = ms_to_datetime(to_ms(BASE_TIME) + 250)

    assert moment.microsecond == 250_000
    assert moment.replace(microsecond=0) == BASE_TIME


def test_split_helpers_match_full_parse():
    parser = EventParser("potlock")
    outcome = {"logs": [
        event_log("donate", direct_donation()),
        event_log("pot_payout", {"recipient_id": "bob.near", "amount": near("1")}),
    ]}

    donations = parser.parse_execution_outcome(outcome, HEIGHT, TX)
    payout = parser.parse_pot_payout(outcome, HEIGHT, TX)

    assert donations == parser.parse_outcome(outcome, HEIGHT, TX).donations
    assert payout.recipient_id == "bob.near"
    assert payout.pot_id is None


def test_non_ascii_digits_are_rejected():
    """Test digit-like unicode is not accepted as an amount or timestamp."""
    bad_time = direct_donation()
    bad_time["donated_at_ms"] = "²"
    bad_amount = direct_donation()
    bad_amount["amount"] = "١٢"

    result = parse(
        event_log("donate", bad_time),
        event_log("donate", bad_amount),
        event_log("donate", direct_donation(donor="dave.near")),
    )

    assert [d.donor_id for d in result.donations] == ["dave.near"]
    assert len(result.warnings) == 2


def test_out_of_range_timestamp_is_a_warning():
    data = direct_donation()
    data["donated_at_ms"] = 10 ** 18

    result = parse(event_log("donate", data), event_log("donate", direct_donation(donor="dave.near")))

    assert [d.donor_id for d in result.donations] == ["dave.near"]
    assert "donated_at_ms" in result.warnings[0]


def test_amount_above_u128_is_rejected():
    at_limit = direct_donation()
    at_limit["amount"] = str(2 ** 128 - 1)
    too_big = direct_donation(donor="dave.near")
    too_big["amount"] = str(2 ** 128)

    result = parse(event_log("donate", at_limit), event_log("donate", too_big))

    assert [d.amount for d in result.donations] == [str(2 ** 128 - 1)]
    assert len(result.warnings) == 1


def test_overlong_account_id_is_rejected():
    """Test ids that would not fit the account columns are skipped."""
    long_donor = direct_donation(donor="a" * 65 + ".near")
    long_message = direct_donation(donor="dave.near")
    long_message["message"] = "thanks " * 100

    result = parse(event_log("donate", long_donor), event_log("donate", long_message))

    assert [d.donor_id for d in result.donations] == ["dave.near"]
    assert len(result.warnings) == 1
    assert "donor_id" in result.warnings[0]


def test_malformed_payout_fields_are_warnings():
    payout = {"recipient_id": "bob.near", "amount": near("1"), "paid_at_ms": 10 ** 18}

    result = parse(event_log("pot_payout", payout))

    assert result.payout is None
    assert len(result.warnings) == 1
