"""
Tile buffer model with fixed read latency

Each word holds one tile slice (a weight tile, an input slice or an output
vector). A read request in cycle t returns data observed in cycle
t + read_latency. rvalid drops when a read is issued and rises when its data
returns; rdata and rvalid then hold until the next read.
Writes through the port land on the clock edge. write()/read() are direct
backdoor accesses used by the host to copy slices in and out.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class TileBuffer:
    """Buffer with a `read_latency`-deep registered read path."""

    def __init__(self, name: str, num_words: int = 16, read_latency: int = 2,
                 verbose: bool = False):
        if read_latency < 1:
            raise ValueError("read_latency must be >= 1")
        self.name = name
        self.num_words = num_words
        self.read_latency = read_latency
        self.verbose = verbose
        self.mem: List[Optional[np.ndarray]] = [None] * num_words
        self.reset()

    def reset(self):
        self.rdata: Optional[np.ndarray] = None
        self.rvalid = False
        self._pipe: List[Tuple[bool, Optional[np.ndarray]]] = \
            [(False, None)] * (self.read_latency - 1)
        self.cycle = 0

    def _check_addr(self, addr: int):
        if not 0 <= addr < self.num_words:
            raise ValueError(f"{self.name}: address {addr} outside [0, {self.num_words})")

    def write(self, addr: int, data):
        """Backdoor write (host copy-in)."""
        self._check_addr(addr)
        self.mem[addr] = np.array(data, copy=True)

    def read(self, addr: int) -> np.ndarray:
        """Backdoor read (host copy-out)."""
        self._check_addr(addr)
        if self.mem[addr] is None:
            raise ValueError(f"{self.name}: read of unwritten word {addr}")
        return self.mem[addr].copy()

    def posedge(self, raddr: int = 0, re: bool = False,
                waddr: int = 0, wdata=None, we: bool = False):
        """Clock edge: advance the read pipeline, commit a port write."""
        self.cycle += 1

        entry = (False, None)
        if re:
            self.rvalid = False
            self._check_addr(raddr)
            word = self.mem[raddr]
            entry = (True, None if word is None else word.copy())
            if self.verbose:
                logger.info(f"[{self.name} @{self.cycle:4d}] RD [{raddr}]")
        self._pipe.insert(0, entry)
        valid, data = self._pipe.pop()
        if valid:
            self.rvalid = True
            self.rdata = data

        if we:
            self._check_addr(waddr)
            self.mem[waddr] = np.array(wdata, copy=True)
            if self.verbose:
                logger.info(f"[{self.name} @{self.cycle:4d}] WR [{waddr}]")
