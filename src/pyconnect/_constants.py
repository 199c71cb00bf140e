"""Internal constants shared across the library."""

STORAGE_PREFIX = "cc:"
STATE_EVENT_PREFIX = "state:"
RESOURCE_PREFIX = "resource"
MQTT_TOPIC_PREFIX = "cc/records"

# Segment counts of ``resource:{id}:{action}`` and ``resource:{id}:{action}:{sub_id}``.
COLLECTION_SEGMENTS = 3
ITEM_SEGMENTS = 4
