"""
Email transport and templates for confirmation emails, sent over SMTP.
"""
import logging
import smtplib
from datetime import timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Tuple

from .config import SMTPConfig


logger = logging.getLogger(__name__)


def _describe_validity(validity: timedelta) -> str:
    hours = int(validity.total_seconds() // 3600)
    if hours >= 1:
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    minutes = max(int(validity.total_seconds() // 60), 1)
    return f"{minutes} minutes"


def render_confirmation_email(
    confirmation_link: str,
    validity: timedelta = timedelta(hours=24)
) -> Tuple[str, str, str]:
    """
    Build the confirmation email.

    Args:
        confirmation_link: Full confirmation URL
        validity: How long the link stays valid

    Returns:
        Tuple of (subject, html_content, text_content)
    """
    subject = "Confirm Your Email Address"
    expires_in = _describe_validity(validity)

    html_content = f'''
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .button {{
            background-color: #4CAF50;
            color: white;
            padding: 14px 28px;
            text-decoration: none;
            display: inline-block;
            border-radius: 5px;
        }}
        .footer {{ margin-top: 30px; font-size: 12px; color: #666; }}
    </style>
</head>
<body>
    <div class="container">
        <h2>Confirm Your Email</h2>
        <p>Click the button below to confirm your email address:</p>
        <p style="text-align: center; margin: 30px 0;">
            <a href="{confirmation_link}" class="button">Confirm Email</a>
        </p>
        <p>Or copy and paste this link into your browser:</p>
        <p style="word-break: break-all;">{confirmation_link}</p>
        <p>This link will expire in {expires_in}.</p>
        <div class="footer">
            <p>If you did not create an account, please ignore this email.</p>
        </div>
    </div>
</body>
</html>
'''

    text_content = f'''
Confirm Your Email

Open the link below to confirm your email address:

{confirmation_link}

This link will expire in {expires_in}.

If you did not create an account, please ignore this email.
'''

    return subject, html_content, text_content


class EmailService:
    """Handles email sending via SMTP with STARTTLS."""

    def __init__(self, config: SMTPConfig):
        self.config = config

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of the email
            text_content: Plain text fallback (optional)

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.config.is_configured():
            logger.error("SMTP credentials not configured")
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.config.sender
        msg['To'] = to_email

        # Add plain text version
        if text_content:
            msg.attach(MIMEText(text_content, 'plain'))

        # Add HTML version
        msg.attach(MIMEText(html_content, 'html'))

        try:
            with smtplib.SMTP(self.config.host, self.config.port, timeout=30) as server:
                server.starttls()
                server.login(self.config.username, self.config.password)
                server.sendmail(self.config.sender, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

        return True
