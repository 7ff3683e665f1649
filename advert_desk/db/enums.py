# db/enums.py
import enum

class StudentClass(enum.StrEnum):
    Y9A1 = "9A1"
    Y9A2 = "9A2"
    Y9A3 = "9A3"
    Y9B1 = "9B1"
    Y9B2 = "9B2"
    Y9B3 = "9B3"
    Y9B4 = "9B4"

class AdvertCategory(enum.StrEnum):
    FOOD = "food"
    SOFT_DRINK = "soft_drink"
    TRAINERS = "trainers"

class MarkFilter(enum.StrEnum):
    ALL = ""
    MARKED = "marked"
    UNMARKED = "unmarked"

class IntakeState(enum.StrEnum):
    EDITING = "editing"
    PREVIEWING = "previewing"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED_WITH_LOCAL_BACKUP = "failed_with_local_backup"

class UiMode(enum.StrEnum):
    HOME = "home"
    INTAKE = "intake"
    BOARD = "board"
