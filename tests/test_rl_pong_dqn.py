"""Tests for the headless env and the DQN pieces built on it."""

from dataclasses import replace

import numpy as np
import pytest
import torch

import pong_engine as pe
import rl_pong_dqn
from rl_pong_dqn import ACTIONS, Config, PongEnv, QNet, Replay, Trainer


def test_reset_skips_countdown():
    env = PongEnv(seed=1)
    obs = env.reset()
    assert env.state.phase is pe.Phase.PLAYING
    assert obs.shape == (6,)
    assert obs.dtype == np.float32
    assert np.all(np.abs(obs) <= 1.0)


def test_same_seed_same_rollout():
    a, b = PongEnv(seed=5), PongEnv(seed=5)
    for i in range(300):
        oa, ra, _, _ = a.step(i % 3)
        ob, rb, _, _ = b.step(i % 3)
        assert np.array_equal(oa, ob) and ra == rb


def test_actions_map_to_paddle_input():
    assert ACTIONS[0] == pe.Input()
    assert ACTIONS[1] == pe.Input(up=True)
    assert ACTIONS[2] == pe.Input(down=True)
    env = PongEnv(seed=2)
    y0 = env.state.player.y
    env.step(1)
    assert env.state.player.y < y0


def test_rejects_unknown_action():
    env = PongEnv(seed=0)
    with pytest.raises(ValueError):
        env.step(3)


def test_reward_for_conceded_point():
    env = PongEnv(seed=0)
    env.state = replace(env.state, ball=pe.Ball(x=1, y=10, vx=-4, vy=0))
    _, reward, done, info = env.step(0)
    assert reward == -1.0
    assert not done
    assert info["score"] == (0, 1)


def test_match_point_ends_episode():
    env = PongEnv(seed=0)
    env.state = replace(
        env.state,
        ball=pe.Ball(x=pe.PONG_CONFIG.width - 1, y=10, vx=4, vy=0),
        score=pe.Score(player=4, ai=1),
    )
    _, reward, done, info = env.step(0)
    assert reward == 1.0
    assert done
    assert info["winner"] == "player"


def test_tick_limit_ends_episode():
    env = PongEnv(seed=0, max_steps=3)
    dones = [env.step(0)[2] for _ in range(3)]
    assert dones == [False, False, True]


def test_render_rgb_shape():
    env = PongEnv(seed=0)
    assert env.render_rgb(scale=1).shape == (300, 500, 3)
    img = env.render_rgb(scale=2)
    assert img.shape == (600, 1000, 3)
    assert img.dtype == np.uint8


def test_qnet_records_activations():
    q = QNet(hidden=16)
    out = q(torch.zeros(6))
    assert out.shape == (len(ACTIONS),)
    assert set(q.activations) == {"fc1", "fc2", "fc3"}
    assert q.activations["fc1"].shape == (16,)


def test_replay_drops_oldest():
    buf = Replay(cap=3)
    for i in range(5):
        buf.push(i)
    assert buf.s == [2, 3, 4]
    assert len(buf) == 3
    assert sorted(buf.sample(3)) == [2, 3, 4]


def test_trainer_learns_for_a_few_matches():
    trainer = Trainer(Config(batch_size=32, buffer_warmup=32, max_steps=200, sync_every=50), seed=0)
    returns = trainer.run(max_episodes=2)
    assert len(returns) == 2
    assert len(trainer.final_scores) == 2
    assert trainer.losses
    assert trainer.step_count == 400


def test_trainer_rebuilds_nets_when_width_changes():
    trainer = Trainer(Config(hidden=64))
    trainer.buf.push(("s", 0, 0.0, "s2", 0.0))
    trainer.update_config(Config(hidden=128, lr=5e-4))
    assert trainer.q.fc1.out_features == 128
    assert len(trainer.buf) == 0
    assert trainer.opt.param_groups[0]["lr"] == 5e-4


def test_point_reports_rally_speed_not_serve_speed():
    env = PongEnv(seed=0)
    env.state = replace(env.state, ball=pe.Ball(x=1, y=10, vx=-7, vy=0, speed=7.0))
    _, reward, _, info = env.step(0)
    assert reward == -1.0
    assert env.state.ball.speed == pe.PONG_CONFIG.ball_speed_initial
    assert info["speed"] == 7.0


def test_seeded_training_is_reproducible():
    def run():
        trainer = Trainer(Config(batch_size=16, buffer_warmup=16, max_steps=60, sync_every=20), seed=3)
        trainer.run(max_episodes=1)
        return trainer

    a, b = run(), run()
    assert a.returns == b.returns
    assert a.epsilons == b.epsilons
    assert a.losses == pytest.approx(b.losses)
    assert a.env.state == b.env.state


@pytest.mark.parametrize("argv, expected", [
    (["--play"], 10),
    (["--play", "--episodes", "25"], 25),
])
def test_play_honours_episodes_flag(monkeypatch, argv, expected):
    calls = {}
    monkeypatch.setattr(rl_pong_dqn, "play", lambda **kw: calls.update(kw))
    rl_pong_dqn.main(argv)
    assert calls["episodes"] == expected


def test_train_defaults_to_500_matches(monkeypatch):
    calls = {}
    monkeypatch.setattr(rl_pong_dqn, "train", lambda **kw: calls.update(kw))
    rl_pong_dqn.main(["--train"])
    assert calls["episodes"] == 500
