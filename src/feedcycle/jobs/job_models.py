from enum import Enum


class Task(str, Enum):
    PROCESS_FEED = "process_feed"
