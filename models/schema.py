# Centralized collection names to prevent drift.

COL_SYSTEM = "system"

# Catalog
COL_MEDICATIONS = "medications"  # medications/{slug}
COL_PHARMACIES = "pharmacies"  # pharmacies/{slug}
COL_PRICES = "prices"  # prices/{price_key(medication_id, pharmacy_id, dosage)}
COL_CATEGORIES = "categories"  # categories/{category_id}, subcategories embedded

# Notifications
COL_PRICE_ALERTS = "price_alerts"
COL_EMAIL_SUBSCRIPTIONS = "email_subscriptions"  # email_subscriptions/{email_doc_id(email)}
COL_EMAIL_CAMPAIGNS = "email_campaigns"

# Content
COL_BLOG_POSTS = "blog_posts"
COL_ADMIN_MESSAGES = "admin_messages"
COL_CONTACTS = "contacts"

COL_AUDIT_LOGS = "audit_logs"

# Enumerations stored on documents
PRICE_SOURCES = ("manual", "google_sheets", "api", "migration")

ALERT_ACTIVE = "active"
ALERT_TRIGGERED = "triggered"
ALERT_CANCELLED = "cancelled"
ALERT_EXPIRED = "expired"
ALERT_STATUSES = (ALERT_ACTIVE, ALERT_TRIGGERED, ALERT_CANCELLED, ALERT_EXPIRED)

SUBSCRIPTION_SOURCES = ("popup", "footer", "checkout", "manual")
SUBSCRIPTION_STATUSES = ("active", "unsubscribed", "bounced")

CAMPAIGN_AUDIENCES = ("all", "price_drops", "new_medications", "promotions", "weekly_digest", "test")
CAMPAIGN_STATUSES = ("draft", "sending", "sent", "failed")

ADMIN_MESSAGE_CATEGORIES = ("warning", "promo", "information")

BLOG_CATEGORIES = (
    "Weight Loss",
    "Men's Health",
    "Women's Health",
    "Hair Loss",
    "Money Saving",
    "General Health",
)
