"""Exception types for the AquaFlow router.

Every failure surfaced to a caller is an ``AquaFlowError`` subclass. Each class
carries an ``ErrorKind`` tag so callers (and ``IntentResult``) can inspect the
category without matching on individual classes.

None of these are retried inside the router.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class ErrorKind(Enum):
    INPUT_VALIDATION = "InputValidation"
    ACCESS_CONTROL = "AccessControl"
    REPLAY_OR_ORDERING = "ReplayOrOrdering"
    ECONOMIC_LIMIT = "EconomicLimit"
    LIQUIDITY = "LiquidityError"
    ARITHMETIC = "ArithmeticError"
    SYSTEM_STATE = "SystemState"
    SETTLEMENT = "SettlementError"


class AquaFlowError(Exception):
    """Base class for all router failures."""

    kind: ErrorKind = ErrorKind.INPUT_VALIDATION


# -- Input validation ---------------------------------------------------------

class InputValidationError(AquaFlowError):
    kind = ErrorKind.INPUT_VALIDATION


class InvalidAddress(InputValidationError):
    pass


class IdenticalTokens(InputValidationError):
    pass


class ZeroAmount(InputValidationError):
    pass


class NegativeAmount(InputValidationError):
    pass


class FeeTooHigh(InputValidationError):
    pass


class SlippageTooHigh(InputValidationError):
    pass


class TransactionExpired(InputValidationError):
    pass


class DeadlineTooSoon(InputValidationError):
    pass


class PoolAlreadyExists(InputValidationError):
    pass


class PoolNotFound(InputValidationError):
    pass


class UpdateTooFrequent(InputValidationError):
    """Pool refresh requested before the minimum block interval elapsed."""


class PackedReserveOverflow(InputValidationError):
    """A reserve does not fit the 128-bit packed slot and would be corrupted."""


class InvalidDisputedState(InputValidationError):
    """A dispute claim that is not a 32-byte hex state root."""


# -- Access control -----------------------------------------------------------

class AccessControlError(AquaFlowError):
    kind = ErrorKind.ACCESS_CONTROL


class Unauthorized(AccessControlError):
    pass


class IntentUserMismatch(AccessControlError):
    pass


# -- Replay / ordering --------------------------------------------------------

class InvalidNonce(AquaFlowError):
    kind = ErrorKind.REPLAY_OR_ORDERING

    def __init__(self, expected: int, got: int) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"invalid nonce: expected {expected}, got {got}")


# -- Economic limits ----------------------------------------------------------

class EconomicLimitError(AquaFlowError):
    kind = ErrorKind.ECONOMIC_LIMIT


class AmountBelowMinimum(EconomicLimitError):
    pass


class AmountAboveMaximum(EconomicLimitError):
    pass


class DailyVolumeExceeded(EconomicLimitError):
    pass


class PriceImpactTooHigh(EconomicLimitError):
    pass


class InsufficientOutputAmount(EconomicLimitError):
    pass


# -- Liquidity ----------------------------------------------------------------

class LiquidityError(AquaFlowError):
    kind = ErrorKind.LIQUIDITY


class InsufficientLiquidity(LiquidityError):
    pass


class NoPoolForPair(LiquidityError):
    pass


class NoVerifiedPoolAvailable(LiquidityError):
    pass


class UnverifiedRouteStep(LiquidityError):
    pass


# -- Checked arithmetic -------------------------------------------------------

class CheckedArithmeticError(AquaFlowError):
    kind = ErrorKind.ARITHMETIC


class ArithmeticOverflow(CheckedArithmeticError):
    pass


class ArithmeticUnderflow(CheckedArithmeticError):
    pass


class DivisionByZero(CheckedArithmeticError):
    pass


# -- System state -------------------------------------------------------------

class SystemStateError(AquaFlowError):
    kind = ErrorKind.SYSTEM_STATE


class RouterPaused(SystemStateError):
    pass


class CircuitBreakerTriggered(SystemStateError):
    def __init__(self, attempted_volume: int, threshold: int) -> None:
        self.attempted_volume = attempted_volume
        self.threshold = threshold
        super().__init__(f"circuit breaker triggered: volume {attempted_volume} > threshold {threshold}")


# -- Settlement ---------------------------------------------------------------

class SettlementError(AquaFlowError):
    kind = ErrorKind.SETTLEMENT


class InvalidSourceChain(SettlementError):
    pass


class InsufficientFinalityBuffer(SettlementError):
    pass


class DisputesDisabled(SettlementError):
    pass


class UnknownSettlement(SettlementError):
    pass


class SettlementAlreadyChallenged(SettlementError):
    pass
