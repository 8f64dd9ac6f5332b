"""Per-channel clients that turn channel events into orchestrator turns."""

from receptionist.channels.base import ChannelClient
from receptionist.channels.email import EmailClient, EmailDelivery
from receptionist.channels.phone import CallSession, PhoneClient
from receptionist.channels.sms import SMSClient, SMSDelivery
from receptionist.channels.video import VideoClient, VideoSession

__all__ = [
    "CallSession",
    "ChannelClient",
    "EmailClient",
    "EmailDelivery",
    "PhoneClient",
    "SMSClient",
    "SMSDelivery",
    "VideoClient",
    "VideoSession",
]
