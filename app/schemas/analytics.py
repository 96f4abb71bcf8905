from pydantic import BaseModel
from typing import Dict, List, Optional

# --- GENERIC BUILDING BLOCKS ---
class MetricChange(BaseModel):
    value: int
    previous_value: int
    percentage_change: float
    trend: str # 'up', 'down'

class TimeSeriesPoint(BaseModel):
    timestamp: str # "2026-02-10"
    label: str # "Feb 10"
    value: int

# --- API RESPONSES ---
class OverviewKPIs(BaseModel):
    new_leads: MetricChange
    demo_bookings: MetricChange
    patient_bookings: MetricChange
    messages_sent: MetricChange
    chatbot_conversations: MetricChange

class AnalyticsOverview(BaseModel):
    date_range: str
    totals: Dict[str, int]
    lead_status_breakdown: Dict[str, int]
    lead_source_breakdown: Dict[str, int]
    messages_by_channel: Dict[str, int]
    kpis: OverviewKPIs
    leads_over_time: List[TimeSeriesPoint]

class ClinicAnalytics(BaseModel):
    clinic_id: int
    clinic_name: Optional[str] = None
    total_leads: int
    lead_status_breakdown: Dict[str, int]
    bookings: Dict[str, int]
    chatbot_threads: int
    chatbot_messages: int
    messages_sent: int
    conversion_rate: float

class ChatbotAnalytics(BaseModel):
    total_conversations: int
    sales_conversations: int
    patient_conversations: int
    total_messages: int
    user_messages: int
    ai_messages: int
    leads_captured: int
    average_messages_per_conversation: float
