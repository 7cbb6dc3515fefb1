from __future__ import annotations

from typing import List, Optional, TypedDict


class DashboardMetrics(TypedDict):
    totalCalls: int
    totalBookings: int
    conversionRate: float
    averageCallDuration: str
    informationInquiries: int
    successfulBookings: int
    droppedMissed: int


class SummaryMetrics(TypedDict):
    callsTaken: int
    avgDuration: str
    bookingsMade: int
    missed: int
    informationInquiries: int
    conversionRate: str
    peakTime: str


class DailySummaryEntry(SummaryMetrics, total=False):
    id: str
    date: str
    formattedDate: str
    phone_number: Optional[str]
    agent_id: str
    agent_name: str
    wants_summary: Optional[bool]
    isDateSummary: bool
    agentSummaries: List["DailySummaryEntry"]
