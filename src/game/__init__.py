"""
Game Module
===========

Headless Pong objects and the match simulator.

Classes:
    Ball            - Bouncing ball with randomized serves
    Paddle          - Field-clamped paddle
    AIPlayer        - Paddle driven by a QLearningAgent
    ScriptedPlayer  - Non-learning tracking opponent
    MatchSimulator  - Runs a full match between two players
"""

import os

# pygame is only used for Rect collision math here
os.environ.setdefault('PYGAME_HIDE_SUPPORT_PROMPT', '1')

from .pong import Ball, Paddle, AIPlayer, ScriptedPlayer, DifficultyLevel
from .match import MatchSimulator, MatchResult

__all__ = [
    'Ball',
    'Paddle',
    'AIPlayer',
    'ScriptedPlayer',
    'DifficultyLevel',
    'MatchSimulator',
    'MatchResult',
]
