"""Tests for the pygame front end's input mapping."""

import os
from collections import defaultdict

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame  # noqa: E402

import pong  # noqa: E402
from pong_engine import Input  # noqa: E402


def pressed(*keys):
    state = defaultdict(bool)
    for k in keys:
        state[k] = True
    return state


def test_no_keys_no_input():
    assert pong.input_from_keys(pressed()) == Input()


def test_wasd_and_arrows():
    assert pong.input_from_keys(pressed(pygame.K_w)) == Input(up=True)
    assert pong.input_from_keys(pressed(pygame.K_DOWN)) == Input(down=True)


def test_both_directions_are_passed_through():
    assert pong.input_from_keys(pressed(pygame.K_UP, pygame.K_s)) == Input(up=True, down=True)


def test_court_rect_scales_to_window():
    rect = pong.court_rect(10, 20, 12, 70)
    assert (rect.x, rect.y, rect.w, rect.h) == (10 * pong.SCALE, 20 * pong.SCALE, 12 * pong.SCALE, 70 * pong.SCALE)
