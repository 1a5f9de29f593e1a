"""
Pong match engine: paddles, ball physics, AI opponent and match phases.

The engine is a set of pure functions over frozen dataclasses. A host calls
``advance(state, elapsed, inp)`` once per frame and keeps the returned state;
nothing here draws, reads the keyboard or touches the token economy.

Randomness (serve angle/direction, AI aim jitter) comes from an injectable
source exposing ``uniform(a, b)`` and ``choice(seq)``, e.g. ``random.Random``
or ``numpy.random.Generator``.
"""
import logging
import math
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PLAYER = "player"
AI = "ai"

_default_rng = random.Random()


@dataclass(frozen=True)
class PongConfig:
    width: float = 500
    height: float = 300
    paddle_width: float = 12
    paddle_height: float = 70
    paddle_speed: float = 6
    paddle_margin: float = 15
    ball_size: float = 10
    ball_speed_initial: float = 4
    ball_speed_increment: float = 0.15
    ball_speed_max: float = 8
    points_to_win: int = 5
    countdown_seconds: float = 3

    serve_max_angle: float = 0.4      # radians
    deflection_factor: float = 0.8    # radians at the paddle tip
    ai_speed_factor: float = 0.9
    ai_dead_zone: float = 2
    ai_jitter: float = 15
    predict_max_bounces: int = 10
    frame_rate: float = 60            # speeds are per 1/frame_rate seconds
    max_elapsed: float = 0.25

    @property
    def paddle_max_y(self):
        return self.height - self.paddle_height

    @property
    def ball_max_y(self):
        return self.height - self.ball_size

    @property
    def player_paddle_x(self):
        return self.paddle_margin

    @property
    def ai_paddle_x(self):
        return self.width - self.paddle_margin - self.paddle_width

    @property
    def ai_speed(self):
        return self.paddle_speed * self.ai_speed_factor

    @property
    def idle_paddle_y(self):
        return self.height / 2 - self.paddle_height / 2


PONG_CONFIG = PongConfig()


class Phase(Enum):
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    FINISHED = "finished"

    @property
    def successor(self) -> Optional["Phase"]:
        return _SUCCESSOR[self]


_SUCCESSOR = {
    Phase.COUNTDOWN: Phase.PLAYING,
    Phase.PLAYING: Phase.FINISHED,
    Phase.FINISHED: None,
}


@dataclass(frozen=True)
class Paddle:
    y: float


@dataclass(frozen=True)
class Ball:
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    speed: float = PONG_CONFIG.ball_speed_initial


@dataclass(frozen=True)
class Score:
    player: int = 0
    ai: int = 0

    def add_point(self, scorer: str) -> "Score":
        if scorer == PLAYER:
            return replace(self, player=self.player + 1)
        return replace(self, ai=self.ai + 1)


@dataclass(frozen=True)
class Input:
    up: bool = False
    down: bool = False


@dataclass(frozen=True)
class MatchState:
    phase: Phase
    countdown: float
    player: Paddle
    ai: Paddle
    ball: Ball
    score: Score = Score()
    input: Input = Input()
    ai_target: float = PONG_CONFIG.idle_paddle_y
    elapsed: float = 0.0  # seconds spent in PLAYING

    @property
    def winner(self) -> Optional[str]:
        return check_winner(self.score)

    @property
    def is_finished(self) -> bool:
        return self.phase is Phase.FINISHED


class WallHit(NamedTuple):
    collided: bool
    new_y: float
    new_vy: float


class PaddleHit(NamedTuple):
    hit: bool
    ball: Optional[Ball] = None


def _centered_ball(cfg: PongConfig) -> Ball:
    return Ball(
        x=cfg.width / 2 - cfg.ball_size / 2,
        y=cfg.height / 2 - cfg.ball_size / 2,
        vx=0.0,
        vy=0.0,
        speed=cfg.ball_speed_initial,
    )


def create_initial_state(cfg: PongConfig = PONG_CONFIG) -> MatchState:
    """Fresh match: countdown running, ball centred and still, paddles centred."""
    return MatchState(
        phase=Phase.COUNTDOWN,
        countdown=cfg.countdown_seconds,
        player=Paddle(cfg.idle_paddle_y),
        ai=Paddle(cfg.idle_paddle_y),
        ball=_centered_ball(cfg),
        ai_target=cfg.idle_paddle_y,
    )


# -----------------------------
# Paddles
# -----------------------------
def clamp_paddle_y(y: float, cfg: PongConfig = PONG_CONFIG) -> float:
    return max(0, min(cfg.paddle_max_y, y))


def move_player_paddle(current_y, inp: Input, frame_scale, cfg: PongConfig = PONG_CONFIG):
    direction = (1 if inp.down else 0) - (1 if inp.up else 0)
    return clamp_paddle_y(current_y + direction * cfg.paddle_speed * frame_scale, cfg)


def move_ai_paddle(current_y, target_y, frame_scale, cfg: PongConfig = PONG_CONFIG):
    """Step toward ``target_y`` at the AI's (slower) speed, holding still inside the dead zone."""
    diff = target_y - current_y
    if abs(diff) <= cfg.ai_dead_zone:
        return current_y
    step = math.copysign(min(abs(diff), cfg.ai_speed * frame_scale), diff)
    return clamp_paddle_y(current_y + step, cfg)


# -----------------------------
# AI aim
# -----------------------------
def predict_ball_y(ball: Ball, target_x, cfg: PongConfig = PONG_CONFIG) -> float:
    """
    Ball y when it reaches ``target_x``, folding the straight-line path off the
    top and bottom walls.

    Folding stops after ``predict_max_bounces`` passes; whatever value it has
    reached then is returned. It only feeds the AI's aim, so an approximate
    answer for absurd overshoots is fine.
    """
    if ball.vx == 0:
        return ball.y
    time_to_reach = (target_x - ball.x) / ball.vx
    if time_to_reach < 0:
        return ball.y

    y = ball.y + ball.vy * time_to_reach
    top, bottom = 0, cfg.ball_max_y
    for _ in range(cfg.predict_max_bounces):
        if top <= y <= bottom:
            break
        if y < top:
            y = -y
        if y > bottom:
            y = 2 * bottom - y
    return y


def calculate_ai_target(ball: Ball, paddle_x=None, rng=None, cfg: PongConfig = PONG_CONFIG) -> float:
    """Paddle y the AI should head for: the predicted intercept with some aim error, or centre."""
    if ball.vx > 0:
        rng = rng or _default_rng
        paddle_x = cfg.ai_paddle_x if paddle_x is None else paddle_x
        predicted = predict_ball_y(ball, paddle_x, cfg)
        return predicted - cfg.paddle_height / 2 + rng.uniform(-cfg.ai_jitter, cfg.ai_jitter)
    return cfg.idle_paddle_y


# -----------------------------
# Ball physics
# -----------------------------
def integrate_ball(ball: Ball, frame_scale) -> Ball:
    return replace(ball, x=ball.x + ball.vx * frame_scale, y=ball.y + ball.vy * frame_scale)


def check_wall_collision(ball, cfg: PongConfig = PONG_CONFIG) -> WallHit:
    if ball.y <= 0:
        return WallHit(True, 0, abs(ball.vy))
    if ball.y >= cfg.ball_max_y:
        return WallHit(True, cfg.ball_max_y, -abs(ball.vy))
    return WallHit(False, ball.y, ball.vy)


def check_paddle_collision(ball: Ball, paddle_x, paddle_y, is_left_paddle,
                           cfg: PongConfig = PONG_CONFIG) -> PaddleHit:
    if is_left_paddle:
        in_x_range = paddle_x <= ball.x <= paddle_x + cfg.paddle_width and ball.vx < 0
    else:
        in_x_range = paddle_x - cfg.ball_size <= ball.x <= paddle_x and ball.vx > 0
    if not in_x_range:
        return PaddleHit(False)

    ball_center = ball.y + cfg.ball_size / 2
    if ball_center < paddle_y or ball_center > paddle_y + cfg.paddle_height:
        return PaddleHit(False)

    # where on the paddle it struck: -1 top edge, +1 bottom edge
    offset = (ball_center - (paddle_y + cfg.paddle_height / 2)) / (cfg.paddle_height / 2)
    angle = offset * cfg.deflection_factor
    speed = min(cfg.ball_speed_max, ball.speed + cfg.ball_speed_increment)
    away = 1 if is_left_paddle else -1
    new_x = paddle_x + cfg.paddle_width if is_left_paddle else paddle_x - cfg.ball_size
    return PaddleHit(True, replace(
        ball,
        x=new_x,
        vx=away * speed * math.cos(angle),
        vy=speed * math.sin(angle),
        speed=speed,
    ))


def check_score(ball, cfg: PongConfig = PONG_CONFIG) -> Optional[str]:
    if ball.x < 0:
        return AI
    if ball.x > cfg.width:
        return PLAYER
    return None


def check_winner(score, cfg: PongConfig = PONG_CONFIG) -> Optional[str]:
    if score.player >= cfg.points_to_win:
        return PLAYER
    if score.ai >= cfg.points_to_win:
        return AI
    return None


# -----------------------------
# Serve
# -----------------------------
def generate_serve_velocity(rng=None, cfg: PongConfig = PONG_CONFIG) -> Tuple[float, float]:
    rng = rng or _default_rng
    angle = rng.uniform(-cfg.serve_max_angle, cfg.serve_max_angle)
    direction = rng.choice((-1, 1))
    return (
        direction * cfg.ball_speed_initial * math.cos(angle),
        cfg.ball_speed_initial * math.sin(angle),
    )


def serve_ball(rng=None, cfg: PongConfig = PONG_CONFIG) -> Ball:
    vx, vy = generate_serve_velocity(rng, cfg)
    return replace(_centered_ball(cfg), vx=float(vx), vy=float(vy))


# -----------------------------
# Match state machine
# -----------------------------
def advance(state: MatchState, elapsed, inp: Input = Input(), rng=None,
            cfg: PongConfig = PONG_CONFIG) -> MatchState:
    """
    One frame of the match. ``elapsed`` is wall-clock seconds since the last
    call; speeds in the config are per 1/frame_rate seconds, so the tick is
    scaled by ``elapsed * frame_rate``. A finished match is returned as is.
    """
    if state.phase is Phase.FINISHED:
        return state
    rng = rng or _default_rng
    elapsed = min(max(elapsed, 0.0), cfg.max_elapsed)

    if state.phase is Phase.COUNTDOWN:
        remaining = state.countdown - elapsed
        if remaining > 0:
            return replace(state, countdown=remaining, input=inp)
        ball = serve_ball(rng, cfg)
        logger.debug("countdown over, serving vx=%.2f vy=%.2f", ball.vx, ball.vy)
        return replace(
            state,
            phase=state.phase.successor,
            countdown=0.0,
            ball=ball,
            input=inp,
            ai_target=calculate_ai_target(ball, cfg.ai_paddle_x, rng, cfg),
        )

    return _play_tick(state, elapsed, inp, rng, cfg)


def _play_tick(state, elapsed, inp, rng, cfg):
    # sub-steps never exceed one nominal frame, so the ball cannot skip a paddle's hit window
    frame_scale = elapsed * cfg.frame_rate
    steps = max(1, math.ceil(frame_scale - 1e-9))
    sub_scale = frame_scale / steps

    player, ai, ball = state.player, state.ai, state.ball
    ai_target = state.ai_target
    scorer = None
    for _ in range(steps):
        player = Paddle(move_player_paddle(player.y, inp, sub_scale, cfg))
        ai = Paddle(move_ai_paddle(ai.y, ai_target, sub_scale, cfg))

        ball = integrate_ball(ball, sub_scale)
        wall = check_wall_collision(ball, cfg)
        if wall.collided:
            ball = replace(ball, y=wall.new_y, vy=wall.new_vy)

        # left is checked first; at most one paddle per sub-step
        hit = check_paddle_collision(ball, cfg.player_paddle_x, player.y, True, cfg)
        if not hit.hit:
            hit = check_paddle_collision(ball, cfg.ai_paddle_x, ai.y, False, cfg)
        if hit.hit:
            ball = hit.ball
            ai_target = calculate_ai_target(ball, cfg.ai_paddle_x, rng, cfg)

        scorer = check_score(ball, cfg)
        if scorer is not None:
            break

    nxt = replace(
        state,
        player=player,
        ai=ai,
        ball=ball,
        input=inp,
        ai_target=ai_target,
        elapsed=state.elapsed + elapsed,
    )
    if scorer is None:
        return nxt

    score = state.score.add_point(scorer)
    logger.debug("point to %s, score %d-%d", scorer, score.player, score.ai)
    winner = check_winner(score, cfg)
    if winner is not None:
        logger.info("match finished: %s wins %d-%d", winner, score.player, score.ai)
        return replace(nxt, phase=state.phase.successor, score=score)

    served = serve_ball(rng, cfg)
    return replace(
        nxt,
        score=score,
        ball=served,
        ai_target=calculate_ai_target(served, cfg.ai_paddle_x, rng, cfg),
    )
