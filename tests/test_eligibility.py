"""Unit tests for the eligibility filter and its predicates."""

from unittest.mock import Mock

import pytest

from opportunity_notifier.domain.models import (
    FixedReward,
    OpportunityCategory,
    RangeReward,
    UnspecifiedReward,
)
from opportunity_notifier.eligibility import (
    EligibilityChecker,
    EligibilityFilter,
    EligibilityVerdict,
    RejectionReason,
    is_global,
    matches_category,
    matches_geography,
    matches_reward,
    matches_skills,
    skills_overlap,
)
from opportunity_notifier.persistence.exceptions import PersistenceError
from tests.helpers import make_grant, make_opportunity, make_preferences, make_recipient


def never_notified(recipient_id, opportunity_id):
    return False


class StaticChecker(EligibilityChecker):
    """Checker returning a fixed verdict and recording its calls."""

    def __init__(self, verdict):
        self.verdict = verdict
        self.calls = []

    def check(self, external_user_id, opportunity_id):
        self.calls.append((external_user_id, opportunity_id))
        return self.verdict


class TestCategory:
    """Tests for category gating."""

    @pytest.mark.parametrize(
        "category,bounties,projects,expected",
        [
            (OpportunityCategory.BOUNTY, True, False, True),
            (OpportunityCategory.BOUNTY, False, True, False),
            (OpportunityCategory.PROJECT, False, True, True),
            (OpportunityCategory.PROJECT, True, False, False),
            (OpportunityCategory.GRANT, True, False, True),
            (OpportunityCategory.GRANT, False, True, True),
            (OpportunityCategory.GRANT, False, False, False),
        ],
    )
    def test_matches_category(self, category, bounties, projects, expected):
        """Test toggles, with grants passing when either toggle is on."""
        preferences = make_preferences(notify_bounties=bounties, notify_projects=projects)
        assert matches_category(preferences, make_opportunity(category=category)) is expected


class TestReward:
    """Tests for the reward band."""

    BAND = {"min_usd": 100, "max_usd": 5000}

    @pytest.mark.parametrize(
        "reward,expected",
        [
            (FixedReward(amount=100, token="USDC", usd_value=100), True),
            (FixedReward(amount=99, token="USDC", usd_value=99), False),
            (RangeReward(min_usd=200, max_usd=2000), True),
            (RangeReward(min_usd=50, max_usd=6000), False),
            (RangeReward(min_usd=200, max_usd=6000), False),
            (RangeReward(min_usd=200), True),
            (UnspecifiedReward(), False),
        ],
    )
    def test_reward_band(self, reward, expected):
        """Test effective minimum and maximum against both bounds."""
        preferences = make_preferences(**self.BAND)
        assert matches_reward(preferences, make_opportunity(reward=reward)) is expected

    def test_no_bounds_accepts_everything(self):
        """Test unset bounds never reject."""
        preferences = make_preferences()
        assert matches_reward(preferences, make_opportunity(reward=UnspecifiedReward()))
        assert matches_reward(preferences, make_opportunity(reward=RangeReward(min_usd=1, max_usd=10**7)))

    def test_variable_range_uses_declared_minimum(self):
        """Test variable compensation with no minimum counts as zero."""
        preferences = make_preferences(min_usd=1)
        opportunity = make_opportunity(reward=RangeReward(variable=True))
        assert matches_reward(preferences, opportunity) is False


class TestSkills:
    """Tests for fuzzy skill matching."""

    @pytest.mark.parametrize(
        "wanted,required,expected",
        [
            (["react"], ["React.js"], True),
            (["React.js"], ["react"], True),
            (["react"], ["python"], False),
            (["react"], [], True),
            ([], ["python"], True),
            (["Rust", "Design"], ["Frontend", "design"], True),
        ],
    )
    def test_matches_skills(self, wanted, required, expected):
        """Test empty sides pass and any overlapping pair matches."""
        preferences = make_preferences(skills=wanted)
        assert matches_skills(preferences, make_opportunity(skills=required)) is expected

    def test_skills_overlap_ignores_blank(self):
        """Test a blank skill never matches."""
        assert skills_overlap("", "react") is False
        assert skills_overlap("  ", "  ") is False


class TestGeography:
    """Tests for geography matching."""

    @pytest.mark.parametrize(
        "listed,region,expected",
        [
            (["Global"], None, True),
            (["United States"], None, False),
            (["India", "Global"], "India", True),
            ([], None, True),
            (["WORLDWIDE"], "Germany", True),
            (["India"], "india", True),
            (["India"], "Germany", False),
            (["Vietnam"], "Ho Chi Minh City, Vietnam", True),
            (["United Kingdom"], "Kingdom", True),
        ],
    )
    def test_matches_geography(self, listed, region, expected):
        """Test global sentinels, unset regions and containment both ways."""
        assert matches_geography(region, make_opportunity(geography=listed)) is expected

    def test_is_global(self):
        """Test empty and sentinel lists are global."""
        assert is_global([])
        assert is_global(["global"])
        assert not is_global(["Nigeria"])


class TestEligibilityFilter:
    """Tests for the ordered filter."""

    def test_default_recipient_is_eligible(self):
        """Test permissive defaults accept a global bounty."""
        eligibility = EligibilityFilter(never_notified)
        assert eligibility.is_eligible(make_recipient(), make_preferences(), make_opportunity())

    def test_already_notified_short_circuits(self):
        """Test the ledger check runs first and stops evaluation."""
        lookup = Mock(return_value=True)
        checker = StaticChecker(EligibilityVerdict.ELIGIBLE)
        eligibility = EligibilityFilter(lookup, checker=checker)

        decision = eligibility.evaluate(
            make_recipient(external_user_id="user-1"),
            make_preferences(notify_bounties=False),
            make_opportunity(),
        )

        assert decision.eligible is False
        assert decision.reason == RejectionReason.ALREADY_NOTIFIED
        lookup.assert_called_once_with(1, "bounty-1")
        assert checker.calls == []

    @pytest.mark.parametrize(
        "preferences,recipient,opportunity,reason",
        [
            ({"notify_bounties": False}, {}, {}, RejectionReason.CATEGORY),
            ({"min_usd": 1000}, {}, {}, RejectionReason.REWARD),
            ({"skills": ["python"]}, {}, {"skills": ["Rust"]}, RejectionReason.SKILLS),
            ({}, {}, {"geography": ["Brazil"]}, RejectionReason.GEOGRAPHY),
        ],
    )
    def test_rejection_reason_is_first_failing_step(self, preferences, recipient, opportunity, reason):
        """Test each predicate reports its own reason."""
        decision = EligibilityFilter(never_notified).evaluate(
            make_recipient(**recipient), make_preferences(**preferences), make_opportunity(**opportunity)
        )
        assert decision.eligible is False
        assert decision.reason == reason

    def test_category_checked_before_reward(self):
        """Test order: a category miss wins over a reward miss."""
        decision = EligibilityFilter(never_notified).evaluate(
            make_recipient(), make_preferences(notify_bounties=False, min_usd=10**6), make_opportunity()
        )
        assert decision.reason == RejectionReason.CATEGORY

    def test_grant_with_either_toggle(self):
        """Test grants pass category gating when either toggle is on."""
        eligibility = EligibilityFilter(never_notified)
        recipient = make_recipient()
        assert eligibility.is_eligible(
            recipient, make_preferences(notify_bounties=True, notify_projects=False), make_grant()
        )
        assert not eligibility.is_eligible(
            recipient, make_preferences(notify_bounties=False, notify_projects=False), make_grant()
        )

    def test_external_check_skipped_without_identity(self):
        """Test unlinked recipients never reach the checker."""
        checker = StaticChecker(EligibilityVerdict.INELIGIBLE)
        eligibility = EligibilityFilter(never_notified, checker=checker)

        assert eligibility.is_eligible(make_recipient(), make_preferences(), make_opportunity())
        assert checker.calls == []

    @pytest.mark.parametrize(
        "verdict,expected",
        [
            (EligibilityVerdict.ELIGIBLE, True),
            (EligibilityVerdict.UNKNOWN, True),
            (EligibilityVerdict.INELIGIBLE, False),
        ],
    )
    def test_external_verdicts(self, verdict, expected):
        """Test unknown maps to eligible and ineligible rejects."""
        checker = StaticChecker(verdict)
        decision = EligibilityFilter(never_notified, checker=checker).evaluate(
            make_recipient(external_user_id="user-1"), make_preferences(), make_opportunity()
        )

        assert decision.eligible is expected
        assert decision.external_verdict == verdict
        assert checker.calls == [("user-1", "bounty-1")]
        if not expected:
            assert decision.reason == RejectionReason.EXTERNAL

    @pytest.mark.parametrize("error", [TimeoutError("slow"), ConnectionError("down"), RuntimeError("bug")])
    def test_external_check_failure_is_fail_open(self, error):
        """Test a throwing or timing-out checker leaves the recipient eligible."""
        checker = Mock(spec=EligibilityChecker)
        checker.check.side_effect = error
        logger = Mock()

        decision = EligibilityFilter(never_notified, checker=checker, logger_instance=logger).evaluate(
            make_recipient(external_user_id="user-1"), make_preferences(), make_opportunity()
        )

        assert decision.eligible is True
        assert decision.external_verdict == EligibilityVerdict.UNKNOWN
        assert logger.warning.call_args.kwargs["extra"]["event"] == "eligibility.check_failed"

    def test_ledger_failure_propagates(self):
        """Test the ledger check is not fail-open."""
        lookup = Mock(side_effect=PersistenceError("db down"))
        with pytest.raises(PersistenceError):
            EligibilityFilter(lookup).evaluate(make_recipient(), make_preferences(), make_opportunity())

    def test_decision_is_truthy_when_eligible(self):
        """Test decisions can be used directly in conditions."""
        eligibility = EligibilityFilter(never_notified)
        assert eligibility.evaluate(make_recipient(), make_preferences(), make_opportunity())
        assert not eligibility.evaluate(
            make_recipient(), make_preferences(notify_bounties=False), make_opportunity()
        )
