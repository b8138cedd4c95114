"""
Main GUI application — Mentra study mentor.

Layout
------
┌─────────────────────────────────────────┐
│ Menu: File | Profile | Settings          │
├─────────────────────────────────────────┤
│ Language: [Hinglish▾]  Explain: [core▾]  │  ← mode_frame
│                      [deep dive] [status]│
├─────────────────────────────────────────┤
│                                          │
│   Chat display (scrollable)              │  ← chat_frame
│                                          │
├─────────────────────────────────────────┤
│ Conversation cleared.          [Undo]    │  ← undo_frame (hidden when idle)
├─────────────────────────────────────────┤
│ Input text area…  │ [Send][Explain][…]   │  ← input_frame
└─────────────────────────────────────────┘

The window never talks to the backend directly.  Every engine operation
runs on a worker thread; the engine's ``on_change`` callback pushes the new
turn list onto a queue which the Tk main loop drains every 40 ms.
"""

import logging
import queue
import threading
import tkinter as tk
from tkinter import messagebox, scrolledtext, ttk

from .auth import FileUserProvider, load_user, save_user, sign_out
from .conversation import ConversationEngine
from .draft_store import DraftStore
from .history_store import HistoryStore
from .mentor_api import MentorClient
from .models import (
    ConceptCard,
    DeepDive,
    EngineState,
    ExplainMode,
    Language,
    ModuleType,
    PlainResult,
    Role,
    TurnKind,
    WeaknessReport,
    turns_from_dicts,
)
from .session_identity import SessionIdentity
from .settings import Settings, load_settings, save_settings
from .titles import DEFAULT_TITLE

log = logging.getLogger("mentra")

CONFIDENCE_BADGES = {
    "high": "✅ High Confidence",
    "medium": "⚠️ Medium Confidence",
    "low": "❓ Low Confidence",
}

STATE_LABELS = {
    EngineState.IDLE: "Ready",
    EngineState.AWAITING_RESPONSE: "⏳ Thinking…",
    EngineState.STREAMING: "✍️ Answering…",
}


def format_turn(turn) -> str:
    """Plain-text rendering of a turn's body (used by both views)."""
    data = turn.structured
    if turn.kind is TurnKind.CONCEPT and isinstance(data, ConceptCard):
        return (
            f"📘 Concept: {data.concept}\n\n"
            f"💡 Example: {data.example}\n\n"
            f"🎯 Takeaway: {data.takeaway}"
        )
    if turn.kind is TurnKind.WEAKNESS and isinstance(data, WeaknessReport):
        areas = "\n".join(f"  • {a}" for a in data.weak_areas) or "  (none)"
        steps = "\n".join(f"  {i}. {a}" for i, a in enumerate(data.next_actions, 1))
        return (
            f"🔍 Weak areas:\n{areas}\n\n"
            f"Why: {data.why_weak}\n\n"
            f"Next actions:\n{steps}\n\n"
            f"Confidence: {data.confidence}"
        )
    if turn.kind is TurnKind.DEEP_DIVE and isinstance(data, DeepDive):
        steps = "\n".join(f"  {i}. {s}" for i, s in enumerate(data.step_by_step, 1))
        mistakes = "\n".join(f"  • {m}" for m in data.common_mistakes)
        return (
            f"🧭 Overview: {data.overview}\n\n"
            f"Why it matters: {data.why_it_matters}\n\n"
            f"Step by step:\n{steps}\n\n"
            f"Example: {data.example}\n\n"
            f"Common mistakes:\n{mistakes}\n\n"
            f"🧠 Memory trick: {data.memory_trick}\n\n"
            f"🎯 Takeaway: {data.takeaway}"
        )
    return turn.content


# ---------------------------------------------------------------------------
# Small helper dialogs
# ---------------------------------------------------------------------------

class _ProfileDialog(tk.Toplevel):
    """Ask for the display name used to personalise replies and key history."""

    def __init__(self, parent: tk.Tk, current_name: str = "") -> None:
        super().__init__(parent)
        self.title("Profile")
        self.resizable(False, False)
        self.grab_set()
        self.result: str | None = None

        f = ttk.Frame(self, padding=16)
        f.pack(fill=tk.BOTH, expand=True)
        ttk.Label(f, text="Your name", font=("", 11, "bold")).pack(anchor=tk.W)
        ttk.Label(
            f, text="Conversations are saved to history only while signed in.",
            wraplength=320, foreground="#555",
        ).pack(anchor=tk.W, pady=(2, 8))

        self._name_var = tk.StringVar(value=current_name)
        entry = ttk.Entry(f, textvariable=self._name_var, width=36)
        entry.pack(fill=tk.X)
        entry.focus_set()
        entry.bind("<Return>", lambda _e: self._save())

        btn_row = ttk.Frame(f)
        btn_row.pack(fill=tk.X, pady=(10, 0))
        ttk.Button(btn_row, text="Save", command=self._save).pack(side=tk.RIGHT, padx=4)
        ttk.Button(btn_row, text="Cancel", command=self.destroy).pack(side=tk.RIGHT)

    def _save(self) -> None:
        name = self._name_var.get().strip()
        if not name:
            messagebox.showwarning("Profile", "Please enter a name.", parent=self)
            return
        self.result = name
        self.destroy()


class _SettingsDialog(tk.Toplevel):
    """Edit the backend URL."""

    def __init__(self, parent: tk.Tk, settings: Settings) -> None:
        super().__init__(parent)
        self.title("Settings")
        self.resizable(False, False)
        self.grab_set()
        self.result: Settings | None = None
        self._settings = settings

        f = ttk.Frame(self, padding=16)
        f.pack(fill=tk.BOTH, expand=True)
        ttk.Label(f, text="Mentor service URL").pack(anchor=tk.W)
        self._url_var = tk.StringVar(value=settings.base_url)
        ttk.Entry(f, textvariable=self._url_var, width=40).pack(fill=tk.X, pady=(2, 8))

        btn_row = ttk.Frame(f)
        btn_row.pack(fill=tk.X)
        ttk.Button(btn_row, text="Save", command=self._save).pack(side=tk.RIGHT, padx=4)
        ttk.Button(btn_row, text="Cancel", command=self.destroy).pack(side=tk.RIGHT)

    def _save(self) -> None:
        updated = Settings(**vars(self._settings))
        updated.base_url = self._url_var.get().strip()
        self.result = updated.normalised()
        self.destroy()


class _HistoryDialog(tk.Toplevel):
    """Browse and delete saved sessions of the signed-in user."""

    def __init__(self, parent: tk.Tk, store: HistoryStore, user_id: str) -> None:
        super().__init__(parent)
        self.title("History")
        self.geometry("760x480")
        self.grab_set()
        self._store = store
        self._user_id = user_id
        self._records = []

        self._module_var = tk.StringVar(value="all")
        self._build_ui()
        self._refresh()

    def _build_ui(self) -> None:
        top = ttk.Frame(self, padding=(10, 8))
        top.pack(fill=tk.X)
        ttk.Label(top, text="Module:").pack(side=tk.LEFT)
        cb = ttk.Combobox(
            top, textvariable=self._module_var, state="readonly", width=14,
            values=["all"] + [m.value for m in ModuleType],
        )
        cb.pack(side=tk.LEFT, padx=(4, 12))
        cb.bind("<<ComboboxSelected>>", lambda _e: self._refresh())

        ttk.Button(top, text="Delete All", command=self._delete_all).pack(side=tk.RIGHT)
        ttk.Button(top, text="Clear Module",
                   command=self._delete_module).pack(side=tk.RIGHT, padx=4)
        ttk.Button(top, text="Delete Selected",
                   command=self._delete_selected).pack(side=tk.RIGHT)

        paned = ttk.PanedWindow(self, orient=tk.HORIZONTAL)
        paned.pack(fill=tk.BOTH, expand=True, padx=10, pady=(0, 10))

        self._list = tk.Listbox(paned, selectmode=tk.EXTENDED, font=("", 10),
                                activestyle="none", width=34)
        self._list.bind("<<ListboxSelect>>", self._preview)
        paned.add(self._list, weight=0)

        self._view = scrolledtext.ScrolledText(paned, wrap=tk.WORD,
                                               state=tk.DISABLED, font=("", 10))
        paned.add(self._view, weight=1)

    def _module_filter(self) -> str | None:
        value = self._module_var.get()
        return None if value == "all" else value

    def _refresh(self) -> None:
        self._records = self._store.list_all(self._user_id, self._module_filter())
        self._list.delete(0, tk.END)
        for rec in self._records:
            stamp = rec.updated_at[:16].replace("T", " ")
            self._list.insert(tk.END, f"{rec.title or DEFAULT_TITLE}  ·  {stamp}")
        self._show("")

    def _show(self, text: str) -> None:
        self._view.config(state=tk.NORMAL)
        self._view.delete("1.0", tk.END)
        self._view.insert(tk.END, text)
        self._view.config(state=tk.DISABLED)

    def _selected(self) -> list:
        return [self._records[i] for i in self._list.curselection()
                if i < len(self._records)]

    def _preview(self, _event=None) -> None:
        selected = self._selected()
        if len(selected) != 1:
            self._show("")
            return
        rec = selected[0]
        turns = turns_from_dicts(rec.content.get("messages") or [])
        blocks = []
        for turn in turns:
            who = "You" if turn.role is Role.USER else "Mentor"
            blocks.append(f"{who}:\n{format_turn(turn)}")
        header = f"[{rec.module_type}] {rec.metadata.get('mode', '')}".rstrip()
        self._show(header + "\n\n" + "\n\n".join(blocks))

    def _delete_selected(self) -> None:
        selected = self._selected()
        if not selected:
            return
        if not messagebox.askyesno(
            "Delete", f"Delete {len(selected)} saved session(s)?\n\nThis cannot be undone.",
            icon=messagebox.WARNING, parent=self,
        ):
            return
        if len(selected) == 1:
            ok = self._store.delete(self._user_id, selected[0].session_id)
        else:
            ok = self._store.delete_many(self._user_id, [r.session_id for r in selected])
        if not ok:
            messagebox.showwarning("Delete", "Some sessions could not be deleted.",
                                   parent=self)
        self._refresh()

    def _delete_module(self) -> None:
        module = self._module_filter()
        if module is None:
            messagebox.showinfo("Clear Module", "Pick a module first.", parent=self)
            return
        if messagebox.askyesno("Clear Module", f"Delete every '{module}' session?",
                               icon=messagebox.WARNING, parent=self):
            self._store.delete_all_by_module(self._user_id, module)
            self._refresh()

    def _delete_all(self) -> None:
        if messagebox.askyesno("Delete All", "Delete your entire history?",
                               icon=messagebox.WARNING, parent=self):
            self._store.delete_all(self._user_id)
            self._refresh()


# ---------------------------------------------------------------------------
# Main window
# ---------------------------------------------------------------------------

class MentorApp:
    """Mentra study mentor — main application class."""

    def __init__(self) -> None:
        self.root = tk.Tk()
        self.root.title("Mentra — Study Mentor 🎓")
        self.root.geometry("980x700")
        self.root.minsize(720, 500)

        self._settings = load_settings()
        self._users = FileUserProvider()
        self._store = HistoryStore()
        self._drafts = DraftStore(debounce_ms=self._settings.draft_debounce_ms)
        self._queue: queue.Queue = queue.Queue()
        self._language_var = tk.StringVar(value=self._settings.language)
        self._explain_var = tk.StringVar(value=self._settings.explain_mode)
        self._status_var = tk.StringVar(value=STATE_LABELS[EngineState.IDLE])
        self._deep_dive_var = tk.StringVar(value="")
        self._syncing_input = False

        self._engine = self._make_engine()

        self._build_menu()
        self._build_mode_bar()
        self._build_input_area()
        self._build_undo_bar()
        self._build_chat_area()

        self._run_in_worker(self._engine.mount)
        self._pump_queue()

        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _make_engine(self) -> ConversationEngine:
        user = load_user()
        client = MentorClient(
            self._settings.base_url,
            access_token=user.access_token if user else None,
            timeout=self._settings.request_timeout,
        )
        return ConversationEngine(
            client,
            history=self._store,
            user_provider=self._users,
            identity=SessionIdentity(),
            drafts=self._drafts,
            language=Language.parse(self._settings.language),
            explain_mode=ExplainMode.parse(self._settings.explain_mode),
            undo_timeout_ms=self._settings.undo_timeout_ms,
            voice_autosend_ms=self._settings.voice_autosend_ms,
            on_change=lambda turns, state: self._queue.put(("render", (turns, state))),
        )

    # ------------------------------------------------------------------
    # UI construction
    # ------------------------------------------------------------------

    def _build_menu(self) -> None:
        bar = tk.Menu(self.root)
        self.root.config(menu=bar)

        file_menu = tk.Menu(bar, tearoff=False)
        bar.add_cascade(label="File", menu=file_menu)
        file_menu.add_command(label="History…", command=self._show_history)
        file_menu.add_separator()
        file_menu.add_command(label="Exit", command=self._on_close)

        profile_menu = tk.Menu(bar, tearoff=False)
        bar.add_cascade(label="Profile", menu=profile_menu)
        profile_menu.add_command(label="Set Name…", command=self._edit_profile)
        profile_menu.add_command(label="Sign Out", command=self._sign_out)

        settings_menu = tk.Menu(bar, tearoff=False)
        bar.add_cascade(label="Settings", menu=settings_menu)
        settings_menu.add_command(label="Mentor Service…", command=self._edit_settings)

    def _build_mode_bar(self) -> None:
        frame = ttk.LabelFrame(self.root, text="Mode", padding=(8, 4))
        frame.pack(fill=tk.X, padx=10, pady=(6, 0))

        ttk.Label(frame, text="Language:").pack(side=tk.LEFT)
        lang = ttk.Combobox(frame, textvariable=self._language_var, state="readonly",
                            width=10, values=[lang.value for lang in Language])
        lang.pack(side=tk.LEFT, padx=(4, 16))
        lang.bind("<<ComboboxSelected>>", self._on_language_changed)

        ttk.Label(frame, text="Explain:").pack(side=tk.LEFT)
        explain = ttk.Combobox(frame, textvariable=self._explain_var, state="readonly",
                               width=8, values=[m.value for m in ExplainMode])
        explain.pack(side=tk.LEFT, padx=(4, 16))
        explain.bind("<<ComboboxSelected>>", self._on_explain_mode_changed)

        ttk.Label(frame, textvariable=self._status_var,
                  foreground="#444").pack(side=tk.RIGHT, padx=10)
        ttk.Label(frame, textvariable=self._deep_dive_var,
                  foreground="#6f42c1").pack(side=tk.RIGHT, padx=10)

    def _build_chat_area(self) -> None:
        frame = ttk.Frame(self.root)
        frame.pack(fill=tk.BOTH, expand=True, padx=10, pady=6)

        self._chat = scrolledtext.ScrolledText(
            frame, wrap=tk.WORD, state=tk.DISABLED,
            font=("", 10), relief=tk.SUNKEN, borderwidth=1,
        )
        self._chat.pack(fill=tk.BOTH, expand=True)

        self._chat.tag_config("user_lbl", foreground="#005cc5", font=("", 10, "bold"))
        self._chat.tag_config("asst_lbl", foreground="#6f42c1", font=("", 10, "bold"))
        self._chat.tag_config("user_msg", foreground="#1a1a2e")
        self._chat.tag_config("asst_msg", foreground="#1a1a2e")
        self._chat.tag_config("badge", foreground="#2e7d32", font=("", 9, "bold"))
        self._chat.tag_config("follow_up", foreground="#6c757d", font=("", 10, "italic"))
        self._chat.tag_config("sys_msg", foreground="#6c757d", font=("", 9, "italic"))

    def _build_undo_bar(self) -> None:
        """Build the (initially hidden) undo bar shown after a reset."""
        self._undo_frame = ttk.Frame(self.root, padding=(10, 4))
        ttk.Label(self._undo_frame, text="Conversation cleared.").pack(side=tk.LEFT)
        ttk.Button(self._undo_frame, text="✕", width=3,
                   command=self._dismiss_undo).pack(side=tk.RIGHT)
        ttk.Button(self._undo_frame, text="Undo",
                   command=self._undo_reset).pack(side=tk.RIGHT, padx=4)

    def _build_input_area(self) -> None:
        outer = ttk.Frame(self.root, padding=(10, 4))
        outer.pack(fill=tk.X, side=tk.BOTTOM)
        self._input_frame = outer

        self._input = scrolledtext.ScrolledText(
            outer, height=4, wrap=tk.WORD, font=("", 10),
            relief=tk.SUNKEN, borderwidth=1,
        )
        self._input.grid(row=0, column=0, sticky="nsew")
        self._input.bind("<Return>", self._on_enter_key)
        self._input.bind("<<Modified>>", self._on_input_modified)

        act_col = ttk.Frame(outer)
        act_col.grid(row=0, column=1, sticky="ns", padx=(6, 0))

        self._action_buttons = []
        for text, command in (
            ("Send ➤", self._send),
            ("Explain in 2 Minutes", self._explain),
            ("Weakness 🔍", self._weakness),
            ("Deep Dive 🧭", self._deep_dive),
        ):
            btn = ttk.Button(act_col, text=text, command=command, width=20)
            btn.pack(pady=1)
            self._action_buttons.append(btn)

        side = ttk.Frame(outer)
        side.grid(row=0, column=2, sticky="ns", padx=(6, 0))
        ttk.Button(side, text="New Chat", command=self._new_chat, width=9).pack(pady=1)
        ttk.Button(side, text="Reset 🗑", command=self._reset, width=9).pack(pady=1)

        outer.columnconfigure(0, weight=1)

    # ------------------------------------------------------------------
    # Chat display helpers
    # ------------------------------------------------------------------

    def _render(self, turns, state: EngineState) -> None:
        """Re-draw the transcript from the engine's turn list."""
        self._chat.config(state=tk.NORMAL)
        self._chat.delete("1.0", tk.END)
        if not turns:
            self._chat.insert(
                tk.END,
                "Ask anything you are studying.  Type a topic and press "
                "\"Explain in 2 Minutes\" for a quick explainer.",
                "sys_msg",
            )
        for turn in turns:
            if self._chat.get("1.0", tk.END).strip():
                self._chat.insert(tk.END, "\n\n")
            if turn.role is Role.USER:
                self._chat.insert(tk.END, "You:\n", "user_lbl")
                self._chat.insert(tk.END, turn.content, "user_msg")
                continue
            self._chat.insert(tk.END, "Mentor:\n", "asst_lbl")
            self._render_assistant(turn)
        self._chat.config(state=tk.DISABLED)
        self._chat.see(tk.END)

        self._status_var.set(STATE_LABELS.get(state, str(state)))
        self._deep_dive_var.set("🧭 Deep dive" if self._engine.deep_dive_active else "")
        busy = state is not EngineState.IDLE
        for btn in self._action_buttons:
            btn.config(state=tk.DISABLED if busy else tk.NORMAL)
        if self._engine.can_undo:
            self._undo_frame.pack(fill=tk.X, side=tk.BOTTOM, after=self._input_frame)
        else:
            self._undo_frame.pack_forget()
        self._sync_input()

    def _render_assistant(self, turn) -> None:
        data = turn.structured
        if isinstance(data, PlainResult) and data.confidence:
            badge = CONFIDENCE_BADGES.get(data.confidence, data.confidence)
            self._chat.insert(tk.END, badge + "\n", "badge")
        self._chat.insert(tk.END, format_turn(turn), "asst_msg")
        if not isinstance(data, PlainResult):
            return
        if data.follow_up:
            self._chat.insert(tk.END, f"\n\n🤔 {data.follow_up}", "follow_up")
        for action in data.suggested_actions or ():
            self._chat.insert(tk.END, "\n")
            btn = tk.Button(
                self._chat, text=action, relief=tk.GROOVE, cursor="hand2",
                font=("", 9), padx=4, pady=0,
                command=lambda a=action: self._fill_input(a),
            )
            self._chat.window_create(tk.END, window=btn)

    def _sync_input(self) -> None:
        """Mirror the engine's input into the text box when they differ."""
        current = self._input.get("1.0", "end-1c")
        if current == self._engine.input:
            return
        self._syncing_input = True
        self._input.delete("1.0", tk.END)
        self._input.insert(tk.END, self._engine.input)
        self._input.edit_modified(False)
        self._syncing_input = False

    def _fill_input(self, text: str) -> None:
        self._engine.set_input(text)
        self._sync_input()
        self._input.focus_set()

    # ------------------------------------------------------------------
    # Queue pump (bridges worker thread → main thread)
    # ------------------------------------------------------------------

    def _pump_queue(self) -> None:
        latest = None
        try:
            while True:
                kind, payload = self._queue.get_nowait()
                if kind == "render":
                    # Only the newest snapshot matters for drawing.
                    latest = payload
                elif kind == "error":
                    messagebox.showerror("Mentra", payload)
        except queue.Empty:
            pass
        if latest is not None:
            self._render(*latest)
        self.root.after(40, self._pump_queue)

    def _run_in_worker(self, func, *args) -> None:
        threading.Thread(target=self._worker, args=(func, *args), daemon=True).start()

    def _worker(self, func, *args) -> None:
        """Background thread: run an engine operation."""
        try:
            func(*args)
        except Exception as exc:  # noqa: BLE001
            log.error("[APP] Unexpected error in %s: %s",
                      getattr(func, "__name__", func), exc, exc_info=True)
            self._queue.put(("error", f"{type(exc).__name__}: {exc}"))

    # ------------------------------------------------------------------
    # Input / actions
    # ------------------------------------------------------------------

    def _on_input_modified(self, _event=None) -> None:
        if not self._input.edit_modified():
            return
        self._input.edit_modified(False)
        if self._syncing_input:
            return
        self._engine.set_input(self._input.get("1.0", "end-1c"))

    def _on_enter_key(self, event: tk.Event) -> str | None:
        if event.state & 0x1:  # Shift held
            return None
        self._send()
        return "break"

    def _send(self) -> None:
        self._engine.set_input(self._input.get("1.0", "end-1c"))
        self._run_in_worker(self._engine.send)

    def _explain(self) -> None:
        self._engine.set_input(self._input.get("1.0", "end-1c"))
        self._run_in_worker(self._engine.explain_concept,
                            ExplainMode.parse(self._explain_var.get()))

    def _weakness(self) -> None:
        self._run_in_worker(self._engine.analyze_weakness)

    def _deep_dive(self) -> None:
        self._run_in_worker(self._engine.enter_deep_dive)

    def _new_chat(self) -> None:
        self._engine.new_chat()

    def _reset(self) -> None:
        self._engine.reset()

    def _undo_reset(self) -> None:
        self._engine.undo_reset()

    def _dismiss_undo(self) -> None:
        self._engine.dismiss_undo()
        self._undo_frame.pack_forget()

    def _on_language_changed(self, _event=None) -> None:
        self._engine.language = Language.parse(self._language_var.get())
        self._settings.language = self._engine.language.value
        save_settings(self._settings)

    def _on_explain_mode_changed(self, _event=None) -> None:
        self._engine.explain_mode = ExplainMode.parse(self._explain_var.get())
        self._settings.explain_mode = self._engine.explain_mode.value
        save_settings(self._settings)

    # ------------------------------------------------------------------
    # Profile / settings / history
    # ------------------------------------------------------------------

    def _edit_profile(self) -> None:
        user = load_user()
        dlg = _ProfileDialog(self.root, (user.display_name or "") if user else "")
        self.root.wait_window(dlg)
        if dlg.result:
            save_user(dlg.result)
            log.info("[AUTH] Signed in as %s", dlg.result)

    def _sign_out(self) -> None:
        sign_out()
        log.info("[AUTH] Signed out")

    def _edit_settings(self) -> None:
        dlg = _SettingsDialog(self.root, self._settings)
        self.root.wait_window(dlg)
        if dlg.result is None:
            return
        self._settings = dlg.result
        save_settings(self._settings)
        messagebox.showinfo("Settings", "The new service URL is used after a restart.",
                            parent=self.root)

    def _show_history(self) -> None:
        user = self._users.get_current_user()
        if user is None:
            messagebox.showinfo("History", "Set your name under Profile to keep history.",
                                parent=self.root)
            return
        dlg = _HistoryDialog(self.root, self._store, user.id)
        self.root.wait_window(dlg)

    # ------------------------------------------------------------------
    # Shutdown / entry point
    # ------------------------------------------------------------------

    def _on_close(self) -> None:
        self._engine.close()
        self._store.close()
        self.root.destroy()

    def run(self) -> None:
        """Start the Tk main loop."""
        self.root.mainloop()


def main() -> None:
    MentorApp().run()
