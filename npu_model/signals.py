"""
Register/wire primitive for the cycle-accurate models

A Signal carries a current value and a next value. Registers only take their
next value on posedge(); wires update immediately. Values are truncated to
the declared width on every write, so a 32-bit signed register wraps exactly
like the hardware one.
"""

from dataclasses import dataclass

from .arith import to_signed, to_unsigned


@dataclass
class Signal:
    """A wire/register with current and next values for proper sequential modeling"""
    name: str
    width: int = 32
    value: int = 0
    next_value: int = 0
    is_reg: bool = True  # True for registers, False for wires
    signed: bool = False

    def fit(self, val: int) -> int:
        """Truncate val to this signal's width."""
        if self.signed:
            return to_signed(val, self.width)
        return to_unsigned(val, self.width)

    def set(self, val: int):
        """Set next value (will take effect on posedge)"""
        val = self.fit(val)
        if self.is_reg:
            self.next_value = val
        else:
            self.value = val  # Wires update immediately
            self.next_value = val

    def get(self) -> int:
        """Get current value"""
        return self.value

    def posedge(self):
        """Clock edge: transfer next to current for registers"""
        if self.is_reg:
            self.value = self.next_value

    def reset(self, val: int = 0):
        """Force both current and next value (reset or direct preload)"""
        val = self.fit(val)
        self.value = val
        self.next_value = val
