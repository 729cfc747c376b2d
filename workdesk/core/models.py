from enum import Enum


class InputType(str, Enum):
    FILE = "FILE"
    MULTIPLE_FILES = "MULTIPLE_FILES"
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    NUMBER = "NUMBER"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    DROPDOWN = "DROPDOWN"
    AMOUNT = "AMOUNT"
    TABLE = "TABLE"
    CHECKBOX = "CHECKBOX"
    DATE = "DATE"
    BOOLEAN = "BOOLEAN"
    RICH_TEXT_EDITOR = "RICH_TEXT_EDITOR"


class ConditionType(str, Enum):
    EQUALS = "EQUALS"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_EQUALS = "LESS_THAN_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_EQUALS = "GREATER_THAN_EQUALS"


class ConditionalActionType(str, Enum):
    MARK_TASK_AS_DONE = "MARK_TASK_AS_DONE"
    MARK_FN_AS_DONE = "MARK_FN_AS_DONE"
    MARK_FIELD_AS_DONE = "MARK_FIELD_AS_DONE"
    NOTIFY_USERS = "NOTIFY_USERS"
    ADD_DYNAMIC_INPUT = "ADD_DYNAMIC_INPUT"


class FnTemplateType(str, Enum):
    NORMAL = "NORMAL"
    SPECIAL = "SPECIAL"


class DepartmentType(str, Enum):
    QUOTATION = "QUOTATION"
    ACCOUNTS = "ACCOUNTS"
    DISPATCH = "DISPATCH"
    SERVICE = "SERVICE"
    CUSTOMER = "CUSTOMER"
    WORKSHOP = "WORKSHOP"


class RoleType(str, Enum):
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"
    SALES = "SALES"
    MARKETING = "MARKETING"
    ACCOUNTS = "ACCOUNTS"
    DISPATCH = "DISPATCH"
    TECHNICIAN = "TECHNICIAN"
    SURVEYOR = "SURVEYOR"
    MEMBER = "MEMBER"


class Priority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ActivityType(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    ASSIGN = "ASSIGN"
    COMPLETE = "COMPLETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    COMMENT = "COMMENT"
    NOTIFICATION = "NOTIFICATION"
    ERROR = "ERROR"
    OTHER = "OTHER"


class EntityType(str, Enum):
    TASK = "TASK"
    FUNCTION = "FUNCTION"
    FIELD = "FIELD"
    INPUT = "INPUT"
    USER = "USER"
    CUSTOMER = "CUSTOMER"
    REPORT = "REPORT"
    NOTIFICATION = "NOTIFICATION"
    SETTING = "SETTING"
    OTHER = "OTHER"


class MetricType(str, Enum):
    API_RESPONSE_TIME = "API_RESPONSE_TIME"
    DATABASE_QUERY_TIME = "DATABASE_QUERY_TIME"
    RENDERING_TIME = "RENDERING_TIME"
    MEMORY_USAGE = "MEMORY_USAGE"
    CPU_USAGE = "CPU_USAGE"
    NETWORK_LATENCY = "NETWORK_LATENCY"
    ERROR_COUNT = "ERROR_COUNT"
    REQUEST_COUNT = "REQUEST_COUNT"
    CONCURRENT_USERS = "CONCURRENT_USERS"
    SYSTEM_METRIC = "SYSTEM_METRIC"


class StatisticType(str, Enum):
    TASK_COMPLETION_RATE = "TASK_COMPLETION_RATE"
    AVERAGE_TASK_DURATION = "AVERAGE_TASK_DURATION"
    USER_ACTIVITY = "USER_ACTIVITY"
    TASK_DISTRIBUTION = "TASK_DISTRIBUTION"
    RESPONSE_TIME = "RESPONSE_TIME"
    ERROR_RATE = "ERROR_RATE"
    RESOURCE_USAGE = "RESOURCE_USAGE"
    CUSTOMER_ENGAGEMENT = "CUSTOMER_ENGAGEMENT"
    PERFORMANCE_METRIC = "PERFORMANCE_METRIC"
    CUSTOM_METRIC = "CUSTOM_METRIC"


class TimePeriod(str, Enum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"
