from marketsync.scheduling.scheduler import DailyJobScheduler, ScheduleStatus, calculate_next_run_time

__all__ = ["DailyJobScheduler", "ScheduleStatus", "calculate_next_run_time"]
