import asyncio
import logging
from datetime import datetime

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType
from meetinghub.core.config import (
    MAIL_USERNAME,
    MAIL_PASSWORD,
    MAIL_FROM,
    MAIL_PORT,
    MAIL_SERVER,
    MAIL_FROM_NAME,
    MAIL_STARTTLS,
    MAIL_SSL_TLS,
    USE_CREDENTIALS,
    SUPPRESS_SEND,
)

# Mail configuration
conf = ConnectionConfig(
    MAIL_USERNAME=MAIL_USERNAME,
    MAIL_PASSWORD=MAIL_PASSWORD,
    MAIL_FROM=MAIL_FROM,
    MAIL_PORT=MAIL_PORT,
    MAIL_SERVER=MAIL_SERVER,
    MAIL_STARTTLS=MAIL_STARTTLS,
    MAIL_SSL_TLS=MAIL_SSL_TLS,
    USE_CREDENTIALS=USE_CREDENTIALS,
    MAIL_FROM_NAME=MAIL_FROM_NAME,
    SUPPRESS_SEND=SUPPRESS_SEND,
)

logger = logging.getLogger(__name__)

fm = FastMail(conf)


# ------------------------------
# Welcome Email
# ------------------------------
async def send_welcome_email(email: str, name: str):
    message = MessageSchema(
        subject="Welcome to MeetingHub!",
        recipients=[email],
        body=f"""
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #222;">
    <h2>Welcome, {name}!</h2>
    <p>Thank you for registering with MeetingHub.</p>
  </body>
</html>
""",
        subtype=MessageType.html,
    )
    try:
        await fm.send_message(message)
    except Exception:
        # Registration already succeeded; a lost welcome mail is only logged
        logger.exception("Failed to send welcome email to %s", email)


# ------------------------------
# Reminder Email
# ------------------------------
async def send_meeting_reminder(email: str, meeting_name: str, start_at: datetime):
    """
    Sends the reminder for one participant shortly before the meeting starts.
    start_at is naive UTC.
    """
    message = MessageSchema(
        subject=f"Reminder: {meeting_name}",
        recipients=[email],
        body=f"""
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #222;">
    <p>This is a reminder that your meeting, '<b>{meeting_name}</b>',
       is scheduled to start at {start_at:%Y-%m-%d %H:%M} UTC.</p>
    <p>Please be ready on time!</p>
  </body>
</html>
""",
        subtype=MessageType.html,
    )
    await fm.send_message(message)


def notify_meeting_reminder(email: str, meeting_name: str, start_at: datetime):
    """Blocking entry point for scheduler threads, which have no running event loop."""
    asyncio.run(send_meeting_reminder(email, meeting_name, start_at))
