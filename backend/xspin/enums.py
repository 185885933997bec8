from enum import Enum


class Phase(str, Enum):
    PRE_GAME = "PRE_GAME"
    BETTING = "BETTING"
    LOCKED = "LOCKED"
    SPINNING = "SPINNING"
    RESULT = "RESULT"
    CLOSED = "CLOSED"


class PlayerStatus(str, Enum):
    IDLE = "IDLE"
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"


class RoomMode(str, Enum):
    BLITZ = "blitz"
    DUEL = "1v1"
    CUSTOM = "custom"


class UserRank(str, Enum):
    ROOKIE = "ROOKIE"
    PRO = "PRO"
    MASTER = "MASTER"
    LEGEND = "LEGEND"


class SpinState(str, Enum):
    IDLE = "IDLE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"


class TournamentStage(str, Enum):
    ENTRY = "ENTRY"
    BRACKET_VIEW = "BRACKET_VIEW"
    GROUP_COUNTDOWN = "GROUP_COUNTDOWN"
    GROUP_SPIN = "GROUP_SPIN"
    GROUP_RESULT = "GROUP_RESULT"
    FINAL_COLOR = "FINAL_COLOR"
    FINAL_COUNTDOWN = "FINAL_COUNTDOWN"
    FINAL_SPIN = "FINAL_SPIN"
    FINAL_RESULT = "FINAL_RESULT"
    CLOSED = "CLOSED"


class CloseReason(str, Enum):
    LEFT = "left"
    INACTIVITY = "inactivity"
    IDLE_CLEANUP = "idle_cleanup"
