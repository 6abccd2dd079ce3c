"""
Lunaxcode Onboarding System.

Multi-step wizard that turns a prospective client's answers into a
normalized project Submission.

Steps:
1. Service Selection - landing page, web app or mobile app
2. Basic Info - project, company and contact details
3. Service Requirements - fields specific to the chosen service type
4. Review - confirm, agree to terms, budget/timeline/add-ons
5. Confirmation - shown once the submission is stored

Progress is tracked per step for funnel analytics.
"""

from .state import FlowState, ServiceType, StepName, StepStatus, NavigationAction
from .submission import Submission
from .service import OnboardingService

__all__ = [
    "FlowState",
    "ServiceType",
    "StepName",
    "StepStatus",
    "NavigationAction",
    "Submission",
    "OnboardingService",
]
