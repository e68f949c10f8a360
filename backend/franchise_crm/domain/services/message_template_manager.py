"""
Message Template Manager
Outreach templates used from the dialer (WhatsApp and e-mail follow-ups)
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import quote

from franchise_crm.core.config import ConfigManager

logger = logging.getLogger(__name__)


class MessageChannel(str, Enum):
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class MessageTemplateType(str, Enum):
    """Types of outreach templates available."""
    WHATSAPP_NO_ANSWER = "whatsapp_no_answer"
    WHATSAPP_INTRO = "whatsapp_intro"
    EMAIL_NO_ANSWER = "email_no_answer"


@dataclass
class MessageTemplate:
    """Outreach template with content and metadata."""
    name: str
    template_type: MessageTemplateType
    channel: MessageChannel
    content: str
    required_vars: List[str]
    subject: Optional[str] = None

    def render(self, **kwargs) -> str:
        """
        Render the template with provided variables.

        Raises:
            ValueError: If required variables are missing
        """
        missing = [var for var in self.required_vars if var not in kwargs]
        if missing:
            raise ValueError(f"Missing required template variables: {missing}")

        try:
            return self.content.format(**kwargs)
        except KeyError as e:
            raise ValueError(f"Template variable not provided: {e}")


DEFAULT_TEMPLATES: Dict[str, MessageTemplate] = {
    MessageTemplateType.WHATSAPP_NO_ANSWER.value: MessageTemplate(
        name="WhatsApp - No Answer",
        template_type=MessageTemplateType.WHATSAPP_NO_ANSWER,
        channel=MessageChannel.WHATSAPP,
        content="Hi {name}, we tried calling you from {brand} regarding your enquiry. Please let us know when you are free.",
        required_vars=["name"],
    ),
    MessageTemplateType.WHATSAPP_INTRO.value: MessageTemplate(
        name="WhatsApp - Intro",
        template_type=MessageTemplateType.WHATSAPP_INTRO,
        channel=MessageChannel.WHATSAPP,
        content="Hello {name}, greetings from {brand}! We have a special offer for you.",
        required_vars=["name"],
    ),
    MessageTemplateType.EMAIL_NO_ANSWER.value: MessageTemplate(
        name="Email - No Answer",
        template_type=MessageTemplateType.EMAIL_NO_ANSWER,
        channel=MessageChannel.EMAIL,
        subject="Missed Call - {brand} Support",
        content="Hi {name}, we tried reaching you by phone from {brand} today. Reply to this email with a convenient time and we will call you back.",
        required_vars=["name"],
    ),
}


class MessageTemplateManager:
    """
    Looks up and renders outreach templates.

    Template bodies can be overridden under `templates.<type>` in the
    YAML config; `{brand}` is filled from `business.brand_name`.
    """

    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or ConfigManager()
        self.brand = self.config.get("business.brand_name", "OK BOZ")
        self._templates: Dict[str, MessageTemplate] = {}
        for key, template in DEFAULT_TEMPLATES.items():
            override = self.config.get(f"templates.{key}")
            if override:
                template = MessageTemplate(
                    name=template.name,
                    template_type=template.template_type,
                    channel=template.channel,
                    content=override,
                    required_vars=template.required_vars,
                    subject=template.subject,
                )
            self._templates[key] = template

    def get_template(self, template_type: str) -> MessageTemplate:
        if template_type not in self._templates:
            raise ValueError(f"Unknown template: {template_type}")
        return self._templates[template_type]

    def list_templates(self) -> List[str]:
        return list(self._templates.keys())

    def render(self, template_type: str, name: str, **kwargs) -> str:
        template = self.get_template(template_type)
        return template.render(name=name or "there", brand=self.brand, **kwargs)

    def render_subject(self, template_type: str) -> Optional[str]:
        template = self.get_template(template_type)
        if not template.subject:
            return None
        return template.subject.format(brand=self.brand)

    def whatsapp_link(self, phone: str, text: str) -> str:
        """wa.me deep link with the message prefilled."""
        digits = re.sub(r"\D", "", phone or "")
        if not digits:
            raise ValueError("Phone number contains no digits")
        return f"https://wa.me/{digits}?text={quote(text)}"

    def mailto_link(self, email: str, subject: str, body: str) -> str:
        if not email:
            raise ValueError("Email address is empty")
        return f"mailto:{email}?subject={quote(subject)}&body={quote(body)}"
