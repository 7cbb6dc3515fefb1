from __future__ import annotations

from typing import Any, Dict, List, TypedDict


class GreetingStyle(TypedDict):
    label: str
    greeting: str


# "from" is a keyword, hence the functional form.
BusinessHours = TypedDict("BusinessHours", {"from": str, "to": str})


class ReminderSettings(TypedDict, total=False):
    enabled: bool
    timing: str


class FaqData(TypedDict):
    questions: List[str]
    answers: List[str]


class OnboardingData(TypedDict, total=False):
    businessName: str
    businessType: str
    primaryLocation: str
    contactNumber: str
    aiVoiceStyle: str
    aiGreetingStyle: GreetingStyle
    aiAssistantName: str
    aiHandlingUnknown: str
    aiHandlingPhoneNumber: str
    aiCallSchedule: str
    services: List[Any]
    businessDays: List[str]
    businessHours: BusinessHours
    appointmentDuration: str
    scheduleFullAction: str
    wantsDailySummary: bool
    wantsEmailConfirmations: bool
    reminderSettings: ReminderSettings
    faqData: FaqData


class OnboardingStatus(TypedDict):
    completed: bool
    redirect_to: str


class OnboardingApiResponse(TypedDict):
    success: bool
    data: List[Dict[str, Any]]
    count: int
    timestamp: str
