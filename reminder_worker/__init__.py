from .config import ReminderConfig, RedisConnectionOptions, build_redis_connection_options
from .delay import calculate_delay_ms
from .dispatcher import ReminderDispatcher
from .backends import SchedulerMode, ReminderSchedulerError
from .scheduler import ReminderScheduler
