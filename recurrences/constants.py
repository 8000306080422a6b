from django.db.models import TextChoices


class MonthDayStrategy(TextChoices):
    THROW = "throw", "Throw"
    SKIP = "skip", "Skip"
    CLAMP = "clamp", "Clamp"


class RecurrenceFrequency(TextChoices):
    SECONDLY = "SECONDLY", "Secondly"
    MINUTELY = "MINUTELY", "Minutely"
    HOURLY = "HOURLY", "Hourly"
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"
    YEARLY = "YEARLY", "Yearly"


class CalendarEntryType(TextChoices):
    RECURRENCE = "recurrence", "Recurrence Pattern"
    STANDALONE = "standalone", "Standalone Occurrence"
    VIRTUALIZED = "virtualized", "Virtualized Occurrence"


# Days 1-28 exist in every month; only larger days may need a strategy.
MAX_ALWAYS_PRESENT_MONTH_DAY = 28

MIN_TYPE_LENGTH = 1
MAX_TYPE_LENGTH = 100
MIN_TIME_ZONE_LENGTH = 1
MAX_TIME_ZONE_LENGTH = 100
MIN_RULE_LENGTH = 1
MAX_RULE_LENGTH = 2000
MIN_EXTENSION_KEY_LENGTH = 1
MAX_EXTENSION_KEY_LENGTH = 100
MAX_EXTENSION_VALUE_LENGTH = 1024

# RRULE UNTIL values must be UTC date-times in basic format.
RULE_UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"
