from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime, timedelta
from typing import Optional

from app.models.booking import DemoBooking, PatientBooking
from app.models.chatbot import ChatbotMessage, ChatbotThread
from app.models.clinic import Clinic
from app.models.lead import Lead
from app.models.message import OutboundMessage
from app.services.lead_status import LIFECYCLE_ORDER
from app.schemas.booking import PATIENT_BOOKING_STATUSES


class AnalyticsService:
    def __init__(self, db: Session):
        self.db = db

    def _get_date_range(self, range_key: str, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        if range_key == "24h":
            return now - timedelta(hours=24), now, "hour"
        elif range_key == "7d":
            return now - timedelta(days=7), now, "day"
        elif range_key == "30d":
            return now - timedelta(days=30), now, "day"
        elif range_key == "90d":
            return now - timedelta(days=90), now, "day"
        return now - timedelta(days=7), now, "day"

    def _calculate_growth(self, current: int, previous: int):
        if previous == 0:
            return 100.0 if current > 0 else 0.0
        return round(((current - previous) / previous) * 100, 1)

    # --- METRIC CALCULATORS ---

    def _get_metric(self, model, start, end, filter_condition=None, date_col=None):
        """Counts rows created in [start, end] and in the period of equal length before it."""
        col = date_col if date_col is not None else model.created_at

        curr_q = self.db.query(func.count(model.id)).filter(col >= start, col <= end)

        duration = end - start
        prev_start = start - duration
        prev_q = self.db.query(func.count(model.id)).filter(col >= prev_start, col < start)

        if filter_condition is not None:
            curr_q = curr_q.filter(filter_condition)
            prev_q = prev_q.filter(filter_condition)

        curr = curr_q.scalar() or 0
        prev = prev_q.scalar() or 0

        return {
            "value": curr,
            "previous_value": prev,
            "percentage_change": self._calculate_growth(curr, prev),
            "trend": "up" if curr >= prev else "down"
        }

    def _count(self, model, *conditions) -> int:
        query = self.db.query(func.count(model.id))
        for condition in conditions:
            query = query.filter(condition)
        return query.scalar() or 0

    def _breakdown(self, column, *conditions):
        query = self.db.query(column, func.count())
        for condition in conditions:
            query = query.filter(condition)
        return {(key or "unknown"): count for key, count in query.group_by(column).all()}

    def _get_time_series(self, model, start, end, granularity):
        """
        Buckets creation timestamps per hour/day in Python so the query
        stays portable across database backends.
        """
        fmt = "%Y-%m-%d %H:00" if granularity == "hour" else "%Y-%m-%d"
        step = timedelta(hours=1) if granularity == "hour" else timedelta(days=1)

        counts = {}
        rows = self.db.query(model.created_at).filter(model.created_at >= start, model.created_at <= end).all()
        for (created_at,) in rows:
            key = created_at.strftime(fmt)
            counts[key] = counts.get(key, 0) + 1

        # Every bucket is present, even with a 0 count
        series = []
        current = start
        while current <= end:
            key = current.strftime(fmt)
            series.append({
                "timestamp": key,
                "label": current.strftime("%H:%M" if granularity == "hour" else "%b %d"),
                "value": counts.get(key, 0),
            })
            current += step
        return series

    # --- MAIN LOGIC ---

    def get_overview(self, date_range: str = "7d", now: Optional[datetime] = None):
        start, end, granularity = self._get_date_range(date_range, now)

        status_breakdown = self._breakdown(Lead.status)
        totals = {
            "leads": self._count(Lead),
            "sales_leads": self._count(Lead, Lead.clinic_id.is_(None)),
            "clinics": self._count(Clinic),
            "leads_contacted": status_breakdown.get("contacted", 0),
            "replies": status_breakdown.get("replied", 0),
            "won": status_breakdown.get("won", 0),
            "lost": status_breakdown.get("lost", 0),
            "demo_bookings": self._count(DemoBooking),
            "patient_bookings": self._count(PatientBooking),
            "messages_sent": self._count(OutboundMessage, OutboundMessage.status == "sent"),
            "messages_failed": self._count(OutboundMessage, OutboundMessage.status == "failed"),
            "chatbot_threads": self._count(ChatbotThread),
            "chatbot_messages": self._count(ChatbotMessage),
        }

        kpis = {
            "new_leads": self._get_metric(Lead, start, end),
            "demo_bookings": self._get_metric(DemoBooking, start, end),
            "patient_bookings": self._get_metric(PatientBooking, start, end),
            "messages_sent": self._get_metric(
                OutboundMessage, start, end,
                filter_condition=(OutboundMessage.status == "sent"),
                date_col=OutboundMessage.sent_at,
            ),
            "chatbot_conversations": self._get_metric(ChatbotThread, start, end),
        }

        return {
            "date_range": date_range,
            "totals": totals,
            "lead_status_breakdown": {s.value: status_breakdown.get(s.value, 0) for s in LIFECYCLE_ORDER},
            "lead_source_breakdown": self._breakdown(Lead.source),
            "messages_by_channel": self._breakdown(OutboundMessage.channel, OutboundMessage.status == "sent"),
            "kpis": kpis,
            "leads_over_time": self._get_time_series(Lead, start, end, granularity),
        }

    def get_chatbot_analytics(self):
        total_threads = self._count(ChatbotThread)
        total_messages = self._count(ChatbotMessage)
        return {
            "total_conversations": total_threads,
            "sales_conversations": self._count(ChatbotThread, ChatbotThread.type == "sales"),
            "patient_conversations": self._count(ChatbotThread, ChatbotThread.type == "patient"),
            "total_messages": total_messages,
            "user_messages": self._count(ChatbotMessage, ChatbotMessage.role == "user"),
            "ai_messages": self._count(ChatbotMessage, ChatbotMessage.role == "assistant"),
            "leads_captured": self._count(Lead, Lead.source == "chatbot"),
            "average_messages_per_conversation": round(total_messages / total_threads, 1) if total_threads else 0.0,
        }

    def get_clinic_analytics(self, clinic_id: int):
        clinic = self.db.query(Clinic).filter(Clinic.id == clinic_id).first()
        if not clinic:
            return None

        status_breakdown = self._breakdown(Lead.status, Lead.clinic_id == clinic_id)
        total_leads = sum(status_breakdown.values())

        booking_counts = self._breakdown(PatientBooking.status, PatientBooking.clinic_id == clinic_id)
        bookings = {"total": sum(booking_counts.values())}
        for status in PATIENT_BOOKING_STATUSES:
            bookings[status] = booking_counts.get(status, 0)

        chatbot_messages = self.db.query(func.count(ChatbotMessage.id))\
            .join(ChatbotThread, ChatbotThread.id == ChatbotMessage.thread_id)\
            .filter(ChatbotThread.clinic_id == clinic_id).scalar() or 0

        messages_sent = self.db.query(func.count(OutboundMessage.id))\
            .join(Lead, Lead.id == OutboundMessage.lead_id)\
            .filter(Lead.clinic_id == clinic_id, OutboundMessage.status == "sent").scalar() or 0

        won = status_breakdown.get("won", 0)
        return {
            "clinic_id": clinic.id,
            "clinic_name": clinic.name,
            "total_leads": total_leads,
            "lead_status_breakdown": {s.value: status_breakdown.get(s.value, 0) for s in LIFECYCLE_ORDER},
            "bookings": bookings,
            "chatbot_threads": self._count(ChatbotThread, ChatbotThread.clinic_id == clinic_id),
            "chatbot_messages": chatbot_messages,
            "messages_sent": messages_sent,
            "conversion_rate": round(won / total_leads * 100, 1) if total_leads else 0.0,
        }
