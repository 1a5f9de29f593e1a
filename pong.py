
import logging
import sys

import pygame

import pong_engine as pe

log = logging.getLogger("pong")

CFG = pe.PONG_CONFIG
SCALE = 2
WIDTH, HEIGHT = int(CFG.width * SCALE), int(CFG.height * SCALE)
FPS = 60
FONT_NAME = "arial"

WHITE = (240, 240, 240)
BG = (25, 25, 30)
DIM = (120, 120, 140)
ACCENT = (120, 200, 255)

UP_KEYS = (pygame.K_w, pygame.K_UP)
DOWN_KEYS = (pygame.K_s, pygame.K_DOWN)


def input_from_keys(keys):
    """Map a pressed-keys lookup (pygame.key.get_pressed() or a dict) to engine input."""
    return pe.Input(
        up=any(keys[k] for k in UP_KEYS),
        down=any(keys[k] for k in DOWN_KEYS),
    )


def court_rect(x, y, w, h):
    return pygame.Rect(round(x * SCALE), round(y * SCALE), round(w * SCALE), round(h * SCALE))


def draw_center_dashed_line(surface):
    dash_h = 18
    gap = 12
    x = WIDTH // 2 - 2
    for y in range(0, HEIGHT, dash_h + gap):
        pygame.draw.rect(surface, (70, 70, 80), (x, y, 4, dash_h), border_radius=2)


def draw_centered(surface, font, text, color, y):
    img = font.render(text, True, color)
    surface.blit(img, (WIDTH // 2 - img.get_width() // 2, y))


def draw_state(surface, fonts, state):
    font_small, font_big = fonts
    surface.fill(BG)
    draw_center_dashed_line(surface)
    pygame.draw.rect(surface, WHITE, court_rect(CFG.player_paddle_x, state.player.y,
                                                CFG.paddle_width, CFG.paddle_height), border_radius=4)
    pygame.draw.rect(surface, WHITE, court_rect(CFG.ai_paddle_x, state.ai.y,
                                                CFG.paddle_width, CFG.paddle_height), border_radius=4)
    pygame.draw.ellipse(surface, ACCENT, court_rect(state.ball.x, state.ball.y,
                                                    CFG.ball_size, CFG.ball_size))

    draw_centered(surface, font_big, f"{state.score.player}   {state.score.ai}", WHITE, 20)

    if state.phase is pe.Phase.COUNTDOWN:
        draw_centered(surface, font_big, str(max(1, int(state.countdown + 0.999))), ACCENT, HEIGHT // 2 - 40)
        hint = "W/S or arrows to move | Esc: quit"
    elif state.phase is pe.Phase.FINISHED:
        msg = "You win!" if state.winner == pe.PLAYER else "AI wins"
        draw_centered(surface, font_big, msg, ACCENT, HEIGHT // 2 - 40)
        hint = "Space/R: new match | Esc: quit"
    else:
        hint = f"first to {CFG.points_to_win} | Esc: quit"
    info_text = font_small.render(hint, True, DIM)
    surface.blit(info_text, (20, HEIGHT - 28))


def game():
    pygame.init()
    screen = pygame.display.set_mode((WIDTH, HEIGHT))
    pygame.display.set_caption("Pong")
    clock = pygame.time.Clock()
    fonts = (pygame.font.SysFont(FONT_NAME, 20), pygame.font.SysFont(FONT_NAME, 54, bold=True))

    state = pe.create_initial_state()
    while True:
        for event in pygame.event.get():
            if event.type == pygame.QUIT or (event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE):
                # closing mid-match just drops the state
                log.info("match closed in phase %s at %d-%d",
                         state.phase.value, state.score.player, state.score.ai)
                pygame.quit()
                return
            if event.type == pygame.KEYDOWN and state.is_finished and event.key in (pygame.K_SPACE, pygame.K_r):
                state = pe.create_initial_state()

        elapsed = clock.tick(FPS) / 1000.0
        was_finished = state.is_finished
        state = pe.advance(state, elapsed, input_from_keys(pygame.key.get_pressed()))
        if state.is_finished and not was_finished:
            log.info("result: %s wins %d-%d",
                     state.winner, state.score.player, state.score.ai)

        draw_state(screen, fonts, state)
        pygame.display.flip()


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    game()
    sys.exit(0)


if __name__ == "__main__":
    main()
