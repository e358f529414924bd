"""
Span attribute names.

Messaging attributes follow the OpenTelemetry semantic conventions;
the rest use the ``shopflow.`` namespace.
"""

ATTR_EVENT_ID = "shopflow.event.id"
ATTR_EVENT_TYPE = "shopflow.event.type"
ATTR_EVENT_COUNT = "shopflow.event.count"
ATTR_SOURCE_SERVICE = "shopflow.service"
ATTR_HANDLER_NAME = "shopflow.handler.name"
ATTR_CORRELATION_ID = "shopflow.correlation.id"

ATTR_MESSAGING_SYSTEM = "messaging.system"
ATTR_MESSAGING_DESTINATION = "messaging.destination"
ATTR_MESSAGING_OPERATION = "messaging.operation"
ATTR_MESSAGING_ROUTING_KEY = "messaging.rabbitmq.destination.routing_key"
ATTR_MESSAGING_MESSAGE_ID = "messaging.message.id"

MESSAGING_SYSTEM_RABBITMQ = "rabbitmq"
