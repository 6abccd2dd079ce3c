"""
Tests for the onboarding step catalog.
"""

from dataclasses import replace

import pytest

from onboarding.errors import UnknownStep
from onboarding.state import ServiceType, StepName
from onboarding.steps import DEFAULT_CATALOG, DEFAULT_STEPS, StepCatalog, StepConfig

CORE_STEPS = {
    StepName.SERVICE_SELECTION,
    StepName.BASIC_INFO,
    StepName.SERVICE_REQUIREMENTS,
    StepName.REVIEW,
}


class TestOrdering:

    @pytest.mark.parametrize("service_type", list(ServiceType))
    def test_steps_for_every_service_type(self, service_type):
        steps = DEFAULT_CATALOG.steps_for(service_type)
        assert steps
        orders = [s.display_order for s in steps]
        assert orders == sorted(set(orders))
        assert CORE_STEPS <= {s.step_name for s in steps}

    def test_next_and_previous(self):
        assert DEFAULT_CATALOG.next("service_selection", None).step_name is StepName.BASIC_INFO
        assert DEFAULT_CATALOG.next("review", ServiceType.WEB_APP).step_name is StepName.CONFIRMATION
        assert DEFAULT_CATALOG.next("confirmation", ServiceType.WEB_APP) is None
        assert DEFAULT_CATALOG.previous("review", ServiceType.WEB_APP).step_name is StepName.SERVICE_REQUIREMENTS

    def test_previous_respects_back_allowed(self):
        # Service type is locked once basic_info is reached
        assert DEFAULT_CATALOG.previous("basic_info", ServiceType.LANDING_PAGE) is None
        assert DEFAULT_CATALOG.previous("service_selection", None) is None

    def test_service_type_filter(self):
        store_listing = StepConfig(
            id="step-store-listing",
            step_number=6,
            step_name=StepName.CONFIRMATION,
            title="Store listing",
            service_types=frozenset({ServiceType.MOBILE_APP}),
        )
        catalog = StepCatalog([c for c in DEFAULT_STEPS if c.step_name is not StepName.CONFIRMATION] + [store_listing])
        assert StepName.CONFIRMATION in {c.step_name for c in catalog.steps_for(ServiceType.MOBILE_APP)}
        assert StepName.CONFIRMATION not in {c.step_name for c in catalog.steps_for(ServiceType.WEB_APP)}

    def test_inactive_steps_hidden(self):
        catalog = StepCatalog([replace(c, is_active=c.step_name is not StepName.REVIEW) for c in DEFAULT_STEPS])
        assert StepName.REVIEW not in {c.step_name for c in catalog.steps_for(ServiceType.WEB_APP)}


class TestWeights:

    def test_confirmation_not_tracked(self):
        tracked = DEFAULT_CATALOG.tracked_steps(ServiceType.LANDING_PAGE)
        assert [c.step_name for c in tracked] == [
            StepName.SERVICE_SELECTION,
            StepName.BASIC_INFO,
            StepName.SERVICE_REQUIREMENTS,
            StepName.REVIEW,
        ]
        assert DEFAULT_CATALOG.total_weight(ServiceType.LANDING_PAGE) == 7

    def test_required_steps(self):
        required = {c.step_name for c in DEFAULT_CATALOG.required_steps(ServiceType.MOBILE_APP)}
        assert required == CORE_STEPS


class TestLookup:

    @pytest.mark.parametrize("step_id", ["step-basic-info", "basic_info", "2"])
    def test_get_by_id(self, step_id):
        assert DEFAULT_CATALOG.get_by_id(step_id).step_name is StepName.BASIC_INFO

    def test_unknown_id(self):
        with pytest.raises(UnknownStep):
            DEFAULT_CATALOG.get_by_id("step-payment")


class TestSkip:

    def test_required_step_without_conditions(self):
        assert not DEFAULT_CATALOG.can_skip("basic_info", {})

    def test_optional_step(self):
        catalog = StepCatalog([replace(c, is_required=c.step_name is not StepName.SERVICE_REQUIREMENTS) for c in DEFAULT_STEPS])
        assert catalog.can_skip("service_requirements", {})

    def test_skip_conditions_match_form_data(self):
        configs = [
            replace(c, skip_conditions={"service_selection.serviceType": "landing_page"})
            if c.step_name is StepName.SERVICE_REQUIREMENTS else c
            for c in DEFAULT_STEPS
        ]
        catalog = StepCatalog(configs)
        assert catalog.can_skip("service_requirements", {"service_selection": {"serviceType": "landing_page"}})
        assert not catalog.can_skip("service_requirements", {"service_selection": {"serviceType": "web_app"}})

    def test_terminal_step_never_skippable(self):
        assert not DEFAULT_CATALOG.can_skip("confirmation", {})


class TestValidation:

    def test_duplicate_step_numbers(self):
        with pytest.raises(ValueError):
            StepCatalog(DEFAULT_STEPS + [replace(DEFAULT_STEPS[0], id="dup")])

    def test_non_positive_weight(self):
        with pytest.raises(ValueError):
            replace(DEFAULT_STEPS[0], progress_weight=0)

    def test_unknown_component_type(self):
        with pytest.raises(ValueError):
            replace(DEFAULT_STEPS[0], component_type="carousel")
