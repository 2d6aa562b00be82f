# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause

import time

import numpy as np
import numba

INT64_MAX = np.iinfo(np.int64).max

# Philox4x32 round multipliers and Weyl key increments (Salmon et al., 2011)
PHILOX_M0 = np.uint64(0xD2511F53)
PHILOX_M1 = np.uint64(0xCD9E8D57)
PHILOX_W0 = np.uint64(0x9E3779B9)
PHILOX_W1 = np.uint64(0xBB67AE85)
PHILOX_ROUNDS = 10

MASK32 = np.uint64(0xFFFFFFFF)
SHIFT32 = np.uint64(32)
SHIFT2 = np.uint64(2)


@numba.njit()
def philox4x32(c0, c1, c2, c3, k0, k1):
    """The Philox4x32-10 counter based bijection.

    Maps a 128 bit counter and a 64 bit key to 128 pseudo-random bits. There
    is no internal state: the same counter and key always give the same
    output, and any counter can be evaluated independently of any other.

    Parameters
    ----------
    c0, c1, c2, c3: int
        The four 32 bit words of the counter.

    k0, k1: int
        The two 32 bit words of the key.

    Returns
    -------
    A tuple of four 32 bit (pseudo)-random words.
    """
    x0 = np.uint64(c0) & MASK32
    x1 = np.uint64(c1) & MASK32
    x2 = np.uint64(c2) & MASK32
    x3 = np.uint64(c3) & MASK32
    key0 = np.uint64(k0) & MASK32
    key1 = np.uint64(k1) & MASK32

    for _ in range(PHILOX_ROUNDS):
        prod0 = PHILOX_M0 * x0
        prod1 = PHILOX_M1 * x2
        y0 = (prod1 >> SHIFT32) ^ x1 ^ key0
        y2 = (prod0 >> SHIFT32) ^ x3 ^ key1
        x1 = prod1 & MASK32
        x3 = prod0 & MASK32
        x0 = y0 & MASK32
        x2 = y2 & MASK32
        key0 = (key0 + PHILOX_W0) & MASK32
        key1 = (key1 + PHILOX_W1) & MASK32

    return x0, x1, x2, x3


@numba.njit()
def philox_rand_int(seed, stream, draw):
    """A counter based (pseudo)-random number generator.

    Returns the ``draw``-th value of the random stream selected by
    ``stream`` under ``seed``. Streams never share state, so parallel
    workers can each use their own stream without any coordination, and a
    given draw does not depend on how many draws were made before it.

    Parameters
    ----------
    seed: int
        A non-negative 63 bit seed; used as the Philox key.

    stream: int
        The stream selector (e.g. the index of an edge).

    draw: int
        The position of the value within the stream.

    Returns
    -------
    A (pseudo)-random non-negative integer below 2**32.
    """
    key = np.uint64(seed)
    selector = np.uint64(stream)
    block = np.uint64(draw) >> SHIFT2
    r0, r1, r2, r3 = philox4x32(
        block & MASK32,
        block >> SHIFT32,
        selector & MASK32,
        selector >> SHIFT32,
        key & MASK32,
        key >> SHIFT32,
    )
    word = draw % 4
    if word == 0:
        result = r0
    elif word == 1:
        result = r1
    elif word == 2:
        result = r2
    else:
        result = r3
    return np.int64(result)


def clock_seed():
    """A non-negative seed derived from the wall clock."""
    return time.time_ns() & INT64_MAX


def draw_epoch_seed(random_state=None):
    """Generate the seed for one epoch of negative sampling.

    Parameters
    ----------
    random_state: numpy RandomState or None
        If None the seed is taken from the wall clock, otherwise it is drawn
        from ``random_state`` so that a seeded run is reproducible.

    Returns
    -------
    A non-negative int.
    """
    if random_state is None:
        return clock_seed()
    return int(random_state.randint(INT64_MAX, dtype=np.int64))


# Generates a timestamp for use in logging messages when verbose=True
def ts():
    return time.ctime(time.time())
