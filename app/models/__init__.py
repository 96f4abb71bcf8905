from .user import User
from .clinic import Clinic, ClinicUser
from .lead import Lead
from .sequence import Sequence, SequenceStep, SequenceEnrollment
from .campaign import Campaign, CampaignLead
from .booking import DemoBooking, PatientBooking
from .demo_access import DemoAccessToken
from .chatbot import ChatbotThread, ChatbotMessage
from .message import OutboundMessage
from .genius import GeniusEngineState
from .automation_job import AutomationJob
from .job_lease import JobLease

__all__ = [
    "User",
    "Clinic",
    "ClinicUser",
    "Lead",
    "Sequence",
    "SequenceStep",
    "SequenceEnrollment",
    "Campaign",
    "CampaignLead",
    "DemoBooking",
    "PatientBooking",
    "DemoAccessToken",
    "ChatbotThread",
    "ChatbotMessage",
    "OutboundMessage",
    "GeniusEngineState",
    "AutomationJob",
    "JobLease",
]
