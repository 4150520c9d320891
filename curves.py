# -*- coding: utf-8 -*-

"""block placement curves for page images

A curve of a given order visits every cell of a 2**order by 2**order grid
exactly once and yields (linear, y, x) for each step. Block n of a page is
painted on the cell the curve visits at step n.
"""


def _left(pos):
    pos[1] -= 1


def _right(pos):
    pos[1] += 1


def _up(pos):
    pos[0] -= 1


def _down(pos):
    pos[0] += 1


# Hilbert curve starting in the top left corner, heading down first.
_instructions = {
    _down: [_right, _down, _down, _right, _down, _up, _left],
    _right: [_down, _right, _right, _down, _right, _left, _up],
    _left: [_up, _left, _left, _up, _left, _right, _down],
    _up: [_left, _up, _up, _left, _up, _down, _right],
}


def _hilbert_walk(order, direction, pos):
    if order == 0:
        return
    steps = _instructions[direction]
    for cell in _hilbert_walk(order - 1, steps[0], pos):
        yield cell
    steps[1](pos)
    yield pos
    for cell in _hilbert_walk(order - 1, steps[2], pos):
        yield cell
    steps[3](pos)
    yield pos
    for cell in _hilbert_walk(order - 1, steps[4], pos):
        yield cell
    steps[5](pos)
    yield pos
    for cell in _hilbert_walk(order - 1, steps[6], pos):
        yield cell


def hilbert(order):
    pos = [0, 0]
    yield 0, 0, 0
    for linear, (y, x) in enumerate(_hilbert_walk(order, _down, pos), 1):
        yield linear, y, x


def linear(order):
    width = 2 ** order
    for linear in range(width * width):
        yield linear, linear // width, linear % width


curves = {
    'linear': linear,
    'hilbert': hilbert,
}


def positions(name, order):
    """Return a list of (y, x), indexed by step number along the curve."""
    try:
        curve = curves[name]
    except KeyError:
        raise ValueError("unknown curve {!r}, choose from {}".format(
            name, ', '.join(sorted(curves))))
    return [(y, x) for _, y, x in curve(order)]
