# dashboard.py
# streamlit run dashboard.py
import threading
import time

import matplotlib.pyplot as plt
import numpy as np
import streamlit as st
import torch

import pong_engine as pe
from rl_pong_dqn import Config, PongEnv, Trainer


def line_plot(values, xlabel, ylabel):
    fig, ax = plt.subplots()
    ax.plot(values)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    st.pyplot(fig, clear_figure=True)


def histogram(values, title):
    fig, ax = plt.subplots()
    ax.hist(values, bins=50)
    ax.set_title(title)
    st.pyplot(fig, clear_figure=True)


def state_caption(state):
    phase = state.phase.value
    if state.is_finished:
        phase += f" ({state.winner} wins)"
    return (f"agent {state.score.player} - {state.score.ai} AI | {phase} | "
            f"ball speed {state.ball.speed:.2f} | AI aiming at y={state.ai_target:.0f}")


def demo_match(trainer, fps=30, max_steps=20_000):
    """Greedy match with the current network on a fresh env; training state is untouched."""
    env = PongEnv(max_steps=max_steps)
    s = env.reset()
    frame_slot = st.empty()
    done, step = False, 0
    while not done:
        with torch.no_grad():
            t = torch.tensor(s, dtype=torch.float32, device=trainer.device)
            a = int(torch.argmax(trainer.q(t)).item())
        s, _, done, _ = env.step(a)
        step += 1
        # every other tick is plenty for a browser
        if step % 2 == 0 or done:
            frame_slot.image(env.render_rgb(scale=2), channels="RGB", caption=state_caption(env.state))
            if fps:
                time.sleep(1.0 / fps)
    st.success(f"Demo finished after {step} ticks: {state_caption(env.state)}")


st.set_page_config(layout="wide", page_title="Pong agent dashboard")
st.title("Pong: DQN agent vs engine AI")

if "cfg" not in st.session_state:
    st.session_state.cfg = Config()
if "trainer" not in st.session_state:
    st.session_state.trainer = Trainer(st.session_state.cfg)
if "thread" not in st.session_state:
    st.session_state.thread = None

# Sidebar: training control + live hyper-parameters
st.sidebar.header("Training")
col_start, col_pause, col_reset = st.sidebar.columns(3)
start = col_start.button("▶ Start")
pause = col_pause.button("⏸ Pause/Resume")
reset = col_reset.button("⟲ Reset")

cfg = st.session_state.cfg
st.sidebar.header("Hyperparameters (live)")
new_cfg = Config(
    lr=st.sidebar.slider("Learning rate", 1e-5, 5e-3, value=cfg.lr, step=1e-5, format="%.5f"),
    gamma=st.sidebar.slider("Gamma (discount)", 0.85, 0.999, value=cfg.gamma, step=0.001),
    eps_decay=st.sidebar.slider("Epsilon decay (steps)", 5_000, 200_000, value=cfg.eps_decay, step=1000),
    batch_size=st.sidebar.select_slider("Batch size", options=[32, 64, 128, 256, 512], value=cfg.batch_size),
    sync_every=st.sidebar.select_slider("Target sync (steps)", options=[250, 500, 1000, 2000, 4000],
                                        value=cfg.sync_every),
    hidden=st.sidebar.select_slider("Hidden units", options=[64, 128, 256], value=cfg.hidden),
    max_steps=st.sidebar.select_slider("Tick limit per match", options=[5_000, 10_000, 20_000, 40_000],
                                       value=cfg.max_steps),
    eps_start=cfg.eps_start,
    eps_end=cfg.eps_end,
    buffer_warmup=cfg.buffer_warmup,
)
st.session_state.trainer.update_config(new_cfg)
st.session_state.cfg = new_cfg

thread = st.session_state.thread
if start and (thread is None or not thread.is_alive()):
    st.session_state.trainer.stop_flag.clear()
    st.session_state.trainer.pause(False)
    st.session_state.thread = threading.Thread(target=st.session_state.trainer.run, daemon=True)
    st.session_state.thread.start()

if pause and thread is not None:
    st.session_state.trainer.pause(not st.session_state.trainer.paused.is_set())

if reset:
    if thread is not None and thread.is_alive():
        st.session_state.trainer.stop()
        thread.join(timeout=1.0)
    st.session_state.trainer = Trainer(st.session_state.cfg)
    st.session_state.thread = None

trainer = st.session_state.trainer
left, right = st.columns([1, 1])

with left:
    st.subheader("Match view")
    greedy = st.radio("Agent control", ["ε-greedy", "Greedy (argmax)"], horizontal=True) != "ε-greedy"
    ticks = st.slider("Engine ticks per refresh", 1, 60, 10, 1)
    # a separate env so the view never races the training thread
    if "view_env" not in st.session_state:
        st.session_state.view_env = PongEnv()
    view = st.session_state.view_env
    for _ in range(ticks):
        if view.state.is_finished:
            view.reset()
        eps = 0.0 if greedy else (trainer.epsilons[-1] if trainer.epsilons else 0.1)
        view.step(trainer.policy(view._state(), eps))
    st.image(view.render_rgb(scale=2), channels="RGB", caption=state_caption(view.state))

    target = pe.predict_ball_y(view.state.ball, pe.PONG_CONFIG.ai_paddle_x)
    st.caption(f"Predicted ball y at the AI paddle: {target:.1f}")

    st.markdown("### Demo: one full match")
    demo_fps = st.slider("Demo FPS", 10, 60, 30, 1, key="demo_fps")
    if st.button("▶ Play one match", key="play_demo"):
        trainer.pause(True)
        try:
            demo_match(trainer, fps=demo_fps, max_steps=trainer.cfg.max_steps)
        finally:
            trainer.pause(False)

with right:
    st.subheader("Training metrics")
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Steps", f"{trainer.step_count}")
    m2.metric("Matches", f"{len(trainer.returns)}")
    m3.metric("ε (exploration)", f"{trainer.epsilon():.3f}")
    recent = trainer.final_scores[-20:]
    wins = sum(1 for p, a in recent if p > a)
    m4.metric("Agent wins (last 20)", f"{wins}/{len(recent)}")

    c1, c2 = st.columns(2)
    with c1:
        st.caption("Match return (points won − points lost)")
        line_plot(trainer.returns, "Match", "Return")
    with c2:
        st.caption("Loss (Huber)")
        line_plot(trainer.losses[-1000:], "Update", "Loss")
    st.caption("Ball speed when each point ended")
    line_plot(trainer.ball_speeds[-500:], "Point", "Speed")

    st.markdown("### Weights")
    if trainer.last_weights_snapshot:
        names = sorted(k for k in trainer.last_weights_snapshot if "weight" in k)
        sel = st.selectbox("Layer weights", names)
        histogram(trainer.last_weights_snapshot[sel].flatten(), f"Histogram of {sel}")
    else:
        st.info("Weights snapshot appears once learning starts.")

    st.markdown("### Activations")
    with torch.no_grad():
        trainer.q(torch.tensor(view._state(), dtype=torch.float32, device=trainer.device))
    layer = st.selectbox("Layer", list(trainer.q.activations))
    histogram(np.asarray(trainer.q.activations[layer]).flatten(), f"Activations for the current view: {layer}")

st.caption("▶ Start trains in a background thread. Sliders apply live; ⏸ pauses.")

if st.sidebar.button("💾 Save model (dqn_pong.pt)"):
    torch.save(trainer.q.state_dict(), "dqn_pong.pt")
    st.sidebar.success("Saved to dqn_pong.pt")
