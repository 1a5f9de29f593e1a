"""
DQN player for the Pong reward game, trained headlessly against the engine's AI.

Requirements:
- pip install numpy torch   (pygame is only needed for the windowed game)

Usage:
- python rl_pong_dqn.py --train   # trains the left paddle and saves weights to dqn_pong.pt
- python rl_pong_dqn.py --play    # runs matches with the trained agent and prints the scores

The env drives pong_engine.advance with a fixed 1/60 s tick, so a full match
is exactly what the windowed game would play, just without a window.
"""
import argparse
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim

import pong_engine as pe

ACTIONS = (pe.Input(), pe.Input(up=True), pe.Input(down=True))  # stay, up, down

BG = (25, 25, 30)
DIM = (70, 70, 80)
WHITE = (240, 240, 240)
ACCENT = (120, 200, 255)


# --- Engine as an env (no pygame) ---
class PongEnv:
    def __init__(self, seed=None, max_steps=20_000, cfg: pe.PongConfig = pe.PONG_CONFIG):
        self.cfg = cfg
        self.dt = 1.0 / cfg.frame_rate
        self.max_steps = max_steps
        self.rng = random.Random(seed)
        self.reset()

    def reset(self):
        state = pe.create_initial_state(self.cfg)
        # agents don't need to watch the countdown
        while state.phase is pe.Phase.COUNTDOWN:
            state = pe.advance(state, self.cfg.max_elapsed, rng=self.rng, cfg=self.cfg)
        self.state = state
        self.t = 0
        return self._state()

    def _state(self):
        c, st = self.cfg, self.state
        half_h = c.height / 2
        return np.array([
            (st.player.y + c.paddle_height / 2 - half_h) / half_h,
            (st.ai.y + c.paddle_height / 2 - half_h) / half_h,
            (st.ball.x + c.ball_size / 2 - c.width / 2) / (c.width / 2),
            (st.ball.y + c.ball_size / 2 - half_h) / half_h,
            st.ball.vx / c.ball_speed_max,
            st.ball.vy / c.ball_speed_max,
        ], dtype=np.float32)

    def step(self, a):
        if a not in (0, 1, 2):
            raise ValueError(f"action must be 0 (stay), 1 (up) or 2 (down), got {a!r}")
        before_ball, before = self.state.ball, self.state.score
        self.state = pe.advance(self.state, self.dt, ACTIONS[a], rng=self.rng, cfg=self.cfg)
        after = self.state.score

        reward = float(after.player - before.player) - float(after.ai - before.ai)
        self.t += 1
        done = self.state.is_finished or self.t >= self.max_steps
        # after a point the engine has already re-served, so report the rally's speed
        speed = before_ball.speed if reward else self.state.ball.speed
        info = {"score": (after.player, after.ai), "winner": self.state.winner, "speed": speed}
        return self._state(), reward, done, info

    def render_rgb(self, scale=2):
        c, st = self.cfg, self.state
        W, H = int(c.width), int(c.height)
        img = np.empty((H, W, 3), dtype=np.uint8)
        img[:] = BG
        for y in range(0, H, 24):
            img[y:y + 12, W // 2 - 1:W // 2 + 1] = DIM

        def box(x, y, w, h, color):
            x0, y0 = max(0, int(x)), max(0, int(y))
            x1, y1 = min(W, int(x + w)), min(H, int(y + h))
            if x0 < x1 and y0 < y1:
                img[y0:y1, x0:x1] = color

        box(c.player_paddle_x, st.player.y, c.paddle_width, c.paddle_height, WHITE)
        box(c.ai_paddle_x, st.ai.y, c.paddle_width, c.paddle_height, WHITE)
        box(st.ball.x, st.ball.y, c.ball_size, c.ball_size, ACCENT)
        if scale != 1:
            img = np.repeat(np.repeat(img, scale, axis=0), scale, axis=1)
        return img


# --- DQN ---
class QNet(nn.Module):
    def __init__(self, in_dim=6, n_actions=len(ACTIONS), hidden=128):
        super().__init__()
        self.fc1 = nn.Linear(in_dim, hidden)
        self.fc2 = nn.Linear(hidden, hidden)
        self.fc3 = nn.Linear(hidden, n_actions)
        # latest layer outputs, read by the dashboard
        self.activations = {}
        for name in ("fc1", "fc2", "fc3"):
            getattr(self, name).register_forward_hook(self._hook(name))

    def _hook(self, name):
        def h(module, inp, out):
            self.activations[name] = out.detach().cpu().numpy()
        return h

    def forward(self, x):
        x = F.relu(self.fc1(x))
        x = F.relu(self.fc2(x))
        return self.fc3(x)


class Replay:
    def __init__(self, cap=50_000, rng=None):
        self.s = []
        self.cap = cap
        self.rng = rng or random.Random()

    def __len__(self):
        return len(self.s)

    def push(self, item):
        self.s.append(item)
        if len(self.s) > self.cap:
            self.s.pop(0)

    def sample(self, bs):
        return self.rng.sample(self.s, bs)


@dataclass
class Config:
    lr: float = 1e-3
    gamma: float = 0.99
    eps_start: float = 1.0
    eps_end: float = 0.05
    eps_decay: int = 40000
    batch_size: int = 128
    sync_every: int = 1000
    hidden: int = 128
    buffer_warmup: int = 1000
    max_steps: int = 20_000


class Trainer:
    """Epsilon-greedy DQN on the left paddle; run() may live in a thread (see dashboard.py)."""

    def __init__(self, cfg: Config, seed=None):
        self.cfg = cfg
        # one seed drives the env, exploration, replay sampling and weight init
        self.env = PongEnv(seed=seed, max_steps=cfg.max_steps)
        self.np_rng = np.random.default_rng(seed)
        self.replay_rng = random.Random(seed)
        if seed is not None:
            torch.manual_seed(seed)
        self.device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
        self._build_nets()
        self.buf = Replay(rng=self.replay_rng)
        self.step_count = 0
        self.stop_flag = threading.Event()
        self.paused = threading.Event()
        self.returns: List[float] = []
        self.losses: List[float] = []
        self.epsilons: List[float] = []
        self.final_scores: List[tuple] = []
        self.ball_speeds: List[float] = []
        self.last_weights_snapshot: Dict[str, np.ndarray] = {}

    def _build_nets(self):
        self.q = QNet(hidden=self.cfg.hidden).to(self.device)
        self.tgt = QNet(hidden=self.cfg.hidden).to(self.device)
        self.tgt.load_state_dict(self.q.state_dict())
        self.opt = optim.Adam(self.q.parameters(), lr=self.cfg.lr)

    def update_config(self, cfg: Config):
        if cfg.lr != self.cfg.lr:
            for g in self.opt.param_groups:
                g["lr"] = cfg.lr
        rebuild = cfg.hidden != self.cfg.hidden
        self.cfg = cfg
        self.env.max_steps = cfg.max_steps
        if rebuild:
            # layer shapes changed, old weights and transitions are useless
            self._build_nets()
            self.buf = Replay(rng=self.replay_rng)

    def snapshot_weights(self):
        self.last_weights_snapshot = {
            name: p.detach().cpu().numpy().copy() for name, p in self.q.named_parameters()
        }

    def epsilon(self):
        c = self.cfg
        return c.eps_end + (c.eps_start - c.eps_end) * np.exp(-1.0 * self.step_count / c.eps_decay)

    def policy(self, s, eps):
        if self.np_rng.random() < eps:
            return int(self.np_rng.integers(0, len(ACTIONS)))
        with torch.no_grad():
            t = torch.tensor(s, dtype=torch.float32, device=self.device)
            return int(torch.argmax(self.q(t)).item())

    def _learn(self):
        c, device = self.cfg, self.device
        batch = self.buf.sample(c.batch_size)
        bs = torch.tensor(np.array([b[0] for b in batch]), dtype=torch.float32, device=device)
        ba = torch.tensor([b[1] for b in batch], dtype=torch.long, device=device)
        br = torch.tensor([b[2] for b in batch], dtype=torch.float32, device=device)
        bs2 = torch.tensor(np.array([b[3] for b in batch]), dtype=torch.float32, device=device)
        bd = torch.tensor([b[4] for b in batch], dtype=torch.float32, device=device)

        qvals = self.q(bs).gather(1, ba.view(-1, 1)).squeeze(1)
        with torch.no_grad():
            y = br + c.gamma * (1.0 - bd) * self.tgt(bs2).max(1).values
        loss = F.smooth_l1_loss(qvals, y)

        self.opt.zero_grad()
        loss.backward()
        torch.nn.utils.clip_grad_norm_(self.q.parameters(), 5.0)
        self.opt.step()
        self.losses.append(float(loss.item()))

    def run(self, max_episodes=None, log_every=0):
        episodes = 0
        while not self.stop_flag.is_set() and (max_episodes is None or episodes < max_episodes):
            s = self.env.reset()
            ep_ret, done, info = 0.0, False, {}
            while not done and not self.stop_flag.is_set():
                while self.paused.is_set() and not self.stop_flag.is_set():
                    time.sleep(0.05)
                self.step_count += 1
                eps = self.epsilon()
                a = self.policy(s, eps)
                s2, r, done, info = self.env.step(a)
                self.buf.push((s, a, r, s2, float(done)))
                s = s2
                ep_ret += r
                self.epsilons.append(eps)
                if r:
                    self.ball_speeds.append(info["speed"])

                if len(self.buf) >= max(self.cfg.buffer_warmup, self.cfg.batch_size):
                    self._learn()
                    if self.step_count % 200 == 0:
                        self.snapshot_weights()
                if self.step_count % self.cfg.sync_every == 0:
                    self.tgt.load_state_dict(self.q.state_dict())

            if done:
                self.returns.append(ep_ret)
                self.final_scores.append(info.get("score", (0, 0)))
                episodes += 1
                if log_every and episodes % log_every == 0:
                    print(f"Episode {episodes}: return {np.mean(self.returns[-log_every:]):.3f}")
        return self.returns

    def stop(self):
        self.stop_flag.set()

    def pause(self, flag: bool):
        if flag:
            self.paused.set()
        else:
            self.paused.clear()


def train(episodes=500, save_path="dqn_pong.pt", seed=None):
    trainer = Trainer(Config(), seed=seed)
    trainer.run(max_episodes=episodes, log_every=50)
    torch.save(trainer.q.state_dict(), save_path)
    print("Saved model to", save_path)
    return trainer


def play(policy_path="dqn_pong.pt", episodes=10, sleep=0.0, seed=None):
    env = PongEnv(seed=seed)
    device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    q = QNet().to(device)
    q.load_state_dict(torch.load(policy_path, map_location=device))
    q.eval()

    for ep in range(episodes):
        s = env.reset()
        done = False
        while not done:
            with torch.no_grad():
                a = int(torch.argmax(q(torch.tensor(s, device=device))).item())
            s, _, done, info = env.step(a)
            if sleep > 0:
                time.sleep(sleep)
        player, ai = info["score"]
        print(f"Match {ep+1}: agent {player} - {ai} AI ({info['winner'] or 'unfinished'})")


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--train", action="store_true")
    parser.add_argument("--play", action="store_true")
    parser.add_argument("--episodes", type=int, default=None,
                        help="matches to train on (default 500) or to watch with --play (default 10)")
    parser.add_argument("--model", default="dqn_pong.pt")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args(argv)
    # per-match engine logs only when watching a handful of matches
    logging.basicConfig(level=logging.INFO if args.play else logging.WARNING, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    if args.train:
        train(episodes=500 if args.episodes is None else args.episodes, save_path=args.model, seed=args.seed)
    elif args.play:
        try:
            play(policy_path=args.model, episodes=10 if args.episodes is None else args.episodes, seed=args.seed)
        except FileNotFoundError:
            parser.error(f"no model at {args.model}, run with --train first")
    else:
        print("Use --train or --play")


if __name__ == "__main__":
    main()
