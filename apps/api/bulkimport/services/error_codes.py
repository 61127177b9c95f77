from enum import Enum


class ErrorCode(str, Enum):
    # input
    NO_FILES = "NO_FILES"
    NO_ACCEPTED_FILES = "NO_ACCEPTED_FILES"
    INVALID_FILE_EXTENSION = "INVALID_FILE_EXTENSION"
    EMPTY_FILE = "EMPTY_FILE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILENAME_TOO_LONG = "FILENAME_TOO_LONG"
    INVALID_JOB_ID = "INVALID_JOB_ID"

    # job lifecycle
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    JOB_NOT_CANCELLABLE = "JOB_NOT_CANCELLABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # dependencies
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"
    STORAGE_REFERENCE_INVALID = "STORAGE_REFERENCE_INVALID"
    JOB_STORE_UNAVAILABLE = "JOB_STORE_UNAVAILABLE"
    COUNTER_STORE_UNAVAILABLE = "COUNTER_STORE_UNAVAILABLE"
    COMPLETION_BACKEND_FAILED = "COMPLETION_BACKEND_FAILED"
    QUEUE_ERROR = "QUEUE_ERROR"

    # admission
    RATE_LIMITED = "RATE_LIMITED"
