"""
Tkinter front end for the CHIP-8 machine.

Owns everything the core leaves to its driver: the window and pixel canvas,
the keyboard-to-keypad mapping, the bell, and the emulation thread that
paces tick() and tick_timers(). All machine calls go through one lock so the
emulation thread and Tk callbacks never touch the machine at the same time.
"""

import logging
import threading
import time
import tkinter as tk
from pathlib import Path
from tkinter import filedialog
from tkinter import messagebox

from .errors import ExecError, LoadError
from .machine import SCREEN_HEIGHT, SCREEN_WIDTH

logger = logging.getLogger(__name__)


class Chip8Window:
    """
    Main window: menu bar, display canvas and the emulation loop.
    """
    # --- Constants ---
    PIXEL_SCALE = 12  # How large each CHIP-8 pixel appears on screen
    CLOCK_SPEED_HZ = 700  # Instructions per second
    TIMER_RATE_HZ = 60    # Rate at which delay and sound timers decrement
    REFRESH_MS = 16       # ~60 FPS

    # CHIP-8 has a 16-key hexadecimal keypad
    KEY_MAP = {
        '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
        'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
        'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
        'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF,
    }

    BG_COLOR = '#2d2d39'
    FG_COLOR = '#d0d0d0'
    CANVAS_BG = '#1a1a22'
    ON_COLOR = '#e0e0ff'

    def __init__(self, master, machine, rom=None, rom_name=None, clock_hz=None, scale=None):
        """``machine`` is expected to have ``rom`` loaded already."""
        self.master = master
        self.machine = machine
        self.clock_hz = clock_hz or self.CLOCK_SPEED_HZ
        self.scale = scale or self.PIXEL_SCALE
        self.lock = threading.Lock()

        # --- Emulation Control ---
        self.rom_data = rom
        self.running = rom is not None
        self.rom_loaded = rom is not None
        self.fault_reported = False
        self.sound_on = False
        self.last_frame = None
        self._stop = threading.Event()

        self._setup_gui()
        self._set_title(rom_name)

        self.emulation_thread = threading.Thread(target=self._emulation_loop, daemon=True)
        self.emulation_thread.start()

        self.master.protocol("WM_DELETE_WINDOW", self.close)
        self.master.after(self.REFRESH_MS, self._update_gui)

    def _setup_gui(self):
        """Creates all the Tkinter widgets."""
        self.master.configure(bg=self.BG_COLOR)

        # --- Menu Bar ---
        menu_bar = tk.Menu(self.master, bg=self.BG_COLOR, fg=self.FG_COLOR, tearoff=0)

        file_menu = tk.Menu(menu_bar, tearoff=0, bg=self.BG_COLOR, fg=self.FG_COLOR)
        file_menu.add_command(label="Open ROM...", command=self._open_rom)
        file_menu.add_separator()
        file_menu.add_command(label="Exit", command=self.close)
        menu_bar.add_cascade(label="File", menu=file_menu)

        emulation_menu = tk.Menu(menu_bar, tearoff=0, bg=self.BG_COLOR, fg=self.FG_COLOR)
        emulation_menu.add_command(label="Pause/Resume", command=self.toggle_pause)
        emulation_menu.add_command(label="Reset", command=self._reset)
        menu_bar.add_cascade(label="Emulation", menu=emulation_menu)

        help_menu = tk.Menu(menu_bar, tearoff=0, bg=self.BG_COLOR, fg=self.FG_COLOR)
        help_menu.add_command(label="About", command=self._show_about)
        menu_bar.add_cascade(label="Help", menu=help_menu)

        self.master.config(menu=menu_bar)

        # --- Canvas for Display ---
        self.canvas = tk.Canvas(self.master, width=SCREEN_WIDTH * self.scale,
                                height=SCREEN_HEIGHT * self.scale,
                                bg=self.CANVAS_BG, highlightthickness=0)
        self.canvas.pack(padx=10, pady=10)

        # One rectangle per pixel, recoloured as the framebuffer changes
        self.pixel_rects = []
        for y in range(SCREEN_HEIGHT):
            row = []
            for x in range(SCREEN_WIDTH):
                x0 = x * self.scale
                y0 = y * self.scale
                rect = self.canvas.create_rectangle(x0, y0, x0 + self.scale, y0 + self.scale,
                                                    fill=self.CANVAS_BG, outline="")
                row.append(rect)
            self.pixel_rects.append(row)

        # --- Keyboard Bindings ---
        self.master.bind("<KeyPress>", self._key_down)
        self.master.bind("<KeyRelease>", self._key_up)

    def _set_title(self, rom_name):
        title = "CHIP-8 Emulator"
        if rom_name:
            title += f" - {rom_name}"
        self.master.title(title)

    def _open_rom(self):
        """Opens a file dialog to load a ROM into the machine."""
        filepath = filedialog.askopenfilename(
            title="Open CHIP-8 ROM",
            filetypes=(("CHIP-8 ROMs", "*.ch8 *.c8"), ("All files", "*.*"))
        )
        if not filepath:
            return

        path = Path(filepath)
        try:
            rom_data = path.read_bytes()
            with self.lock:
                self.machine.load(rom_data)
        except (OSError, LoadError) as e:
            logger.error("Failed to load %s: %s", path, e)
            messagebox.showerror("Error Loading ROM", f"Failed to load the ROM file.\n\n{e}")
            return

        self.rom_data = rom_data
        self.rom_loaded = True
        self.running = True
        self.fault_reported = False
        self.last_frame = None
        self._set_title(path.name)
        logger.info("Running %s", path.name)

    def _reset(self):
        """Resets the machine and reloads the current ROM, if any."""
        with self.lock:
            if self.rom_data is not None:
                self.machine.load(self.rom_data)
            else:
                self.machine.reset()
        self.running = self.rom_loaded
        self.fault_reported = False
        self.last_frame = None
        logger.info("Machine reset")

    def toggle_pause(self):
        if not self.rom_loaded:
            return
        with self.lock:
            if self.machine.halted():
                return
        self.running = not self.running
        logger.info("Emulation %s", "resumed" if self.running else "paused")

    def close(self):
        self._stop.set()
        self.master.quit()

    def _key_down(self, event):
        key = event.keysym.lower()
        if key in self.KEY_MAP:
            with self.lock:
                self.machine.set_key(self.KEY_MAP[key], True)

    def _key_up(self, event):
        key = event.keysym.lower()
        if key in self.KEY_MAP:
            with self.lock:
                self.machine.set_key(self.KEY_MAP[key], False)

    def _show_about(self):
        messagebox.showinfo("About", "CHIP-8 Emulator\n\nKeypad Mapping:\n1 2 3 4\nQ W E R\nA S D F\nZ X C V")

    def _update_gui(self):
        """Periodically redraws the screen, rings the bell and reports faults."""
        with self.lock:
            frame = self.machine.framebuffer()
            sound = self.machine.sound_active()
            fault = self.machine.fault

        if frame != self.last_frame:
            self._draw_screen(frame)
            self.last_frame = frame

        if sound and not self.sound_on:
            self.master.bell()
        self.sound_on = sound

        if fault is not None and not self.fault_reported:
            self.fault_reported = True
            messagebox.showerror("Emulation Halted", str(fault))

        if not self._stop.is_set():
            self.master.after(self.REFRESH_MS, self._update_gui)

    def _draw_screen(self, frame):
        """Recolours only the pixels that changed since the last frame."""
        previous = self.last_frame
        for y, row in enumerate(frame):
            if previous is not None and previous[y] == row:
                continue
            for x, pixel in enumerate(row):
                if previous is None or previous[y][x] != pixel:
                    color = self.ON_COLOR if pixel else self.CANVAS_BG
                    self.canvas.itemconfig(self.pixel_rects[y][x], fill=color)

    def _emulation_loop(self):
        """The main loop running in a separate thread to not block the GUI."""
        cycle_interval = 1.0 / self.clock_hz
        timer_interval = 1.0 / self.TIMER_RATE_HZ
        last_cycle_update = last_timer_update = time.perf_counter()

        while not self._stop.is_set():
            if not self.running:
                # Sleep when not running to reduce CPU usage
                time.sleep(0.01)
                last_cycle_update = last_timer_update = time.perf_counter()
                continue

            current_time = time.perf_counter()

            # --- Execute CPU Cycles ---
            if current_time - last_cycle_update >= cycle_interval:
                try:
                    with self.lock:
                        self.machine.tick()
                except ExecError as e:
                    logger.error("Emulation stopped: %s", e)
                    self.running = False
                    continue
                last_cycle_update += cycle_interval

            # --- Update Timers ---
            if current_time - last_timer_update >= timer_interval:
                with self.lock:
                    self.machine.tick_timers()
                last_timer_update += timer_interval

            time.sleep(min(cycle_interval, timer_interval) / 4)


def run(machine, rom=None, rom_name=None, clock_hz=None, scale=None):
    """Open the window and block until it is closed."""
    root = tk.Tk()
    window = Chip8Window(root, machine, rom=rom, rom_name=rom_name, clock_hz=clock_hz, scale=scale)
    root.mainloop()
    window.emulation_thread.join(timeout=1.0)
    root.destroy()
