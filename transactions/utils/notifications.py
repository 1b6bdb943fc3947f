import resend
import logging
from datetime import datetime

from django.conf import settings
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def send_transaction_made_email(member, txn):
    try:
        email_body = render_to_string(
            "transaction_made.html",
            {
                "member": member,
                "transaction": txn,
                "sacco_name": settings.SACCO_NAME,
                "currency": settings.CURRENCY,
                "current_year": datetime.now().year,
            },
        )
        params = {
            "from": settings.DEFAULT_FROM_EMAIL,
            "to": [member.email],
            "subject": f"{txn.account.get_account_type_display()} Transaction Confirmation",
            "html": email_body,
        }
        response = resend.Emails.send(params)
        logger.info(f"Email sent to {member.email} with response: {response}")
        return response
    except Exception as e:
        logger.error(f"Error sending email to {member.email}: {str(e)}")
        return None
