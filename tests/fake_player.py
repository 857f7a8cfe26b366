from player.host import HostPlayer


class FakePlayer(HostPlayer):
    """Scripted in-memory host: records every command, fires events on demand."""

    def __init__(self, time_pos=0.0, paused=False, speed=1.0):
        super().__init__()
        self.time_pos = time_pos
        self.paused = paused
        self.speed = speed

        self.seeks = []
        self.speeds = []
        self.pauses = []
        self.texts = []
        self.errors = []

    def get_pause(self):
        return self.paused

    def set_pause(self, paused):
        self.paused = paused
        self.pauses.append(paused)
        # a real player reports the change back, like mpv does
        self._emit_pause(paused)

    def get_speed(self):
        return self.speed

    def set_speed(self, speed):
        self.speed = speed
        self.speeds.append(speed)
        self._emit_speed(speed)

    def get_time_pos(self):
        return self.time_pos

    def seek_absolute(self, seconds):
        self.seeks.append(seconds)
        self.time_pos = seconds
        self._emit_seek()

    def show_text(self, text, duration):
        self.texts.append((text, duration))

    def report_error(self, text):
        self.errors.append(text)

    # ------------------------------
    # test helpers
    # ------------------------------
    def user_pause(self, paused):
        self.paused = paused
        self._emit_pause(paused)

    def user_seek(self, seconds):
        self.time_pos = seconds
        self._emit_seek()

    def user_speed(self, speed):
        self.speed = speed
        self._emit_speed(speed)

    def press(self, name):
        self._emit_key(name)

    def fire_timers(self):
        """Run every registered timer once, regardless of interval."""
        for _, _, fn in list(self.timers._timers):
            fn()

    def shutdown(self):
        self._emit_shutdown()
