"""Weekly meal plan email delivery.

Renders one ``OutboundMessage`` per recipient from the pre-generated
meal plan and delivers chunks of messages over SMTP.
"""
