"""
HTML escaping for push messages delivered through the Telegram bot.

The bot sends in HTML parse mode, so titles and bodies that may carry
customer-written text (review text, message content, store names) are
escaped before they are embedded.
"""

import html
from typing import Optional


def safe_html(text: Optional[str]) -> str:
    """
    Escape HTML special characters in user-provided text.

    Examples:
        >>> safe_html("Store</b><i>")
        'Store&lt;/b&gt;&lt;i&gt;'

        >>> safe_html(None)
        ''
    """
    if text is None:
        return ""
    return html.escape(str(text), quote=True)
