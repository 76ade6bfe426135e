from enum import Enum


class CampaignTypeEnum(str, Enum):
    one_time = "one-time"
    sequence = "sequence"
    automation = "automation"


class CampaignStatusEnum(str, Enum):
    draft = "draft"
    scheduled = "scheduled"
    sending = "sending"
    sent = "sent"
    paused = "paused"
    cancelled = "cancelled"


class SubscriptionTierEnum(str, Enum):
    free = "free"
    starter = "starter"
    pro = "pro"
