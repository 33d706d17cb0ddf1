#!/usr/bin/env python3
"""
MutaStore Streamlit TODO App Example
====================================

A TODO list whose state lives in a MutaStore store kept in Streamlit's
session state. It shows:

- Dataclass snapshots updated through drafts
- A change listener logging each step's patches
- A connected view reading the store through ``use_store``
- Rerunning the script whenever the connected view went stale

To run this example:
```bash
$ pip install -e .[streamlit] && streamlit run examples/streamlit/todo_app.py
```
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Tuple

import streamlit as st

from mutastore import ChangeEvent, ConnectedView, Store, configure_logging, create_store, use_store

# ==============================================================================================
# Configuration and Constants
# ==============================================================================================

LOG_LEVEL = logging.DEBUG

STORE_SESSION_KEY = "mutastore_todo_store"
VIEW_SESSION_KEY = "mutastore_todo_view"

FILTER_OPTIONS = ["all", "active", "completed"]
UI_COLUMN_RATIO_INPUT_BUTTON = [4, 1]
UI_COLUMN_RATIO_CHECKBOX_TEXT_DELETE = [0.1, 0.8, 0.1]

EMPTY_TODO_WARNING_MESSAGE = "Please enter some text for the todo."

logger = logging.getLogger(__name__)
logger.setLevel(LOG_LEVEL)
configure_logging("info")

# Suppress noisy Streamlit warnings when running script directly
logging.getLogger("streamlit.runtime.scriptrunner_utils.script_run_context").setLevel(
    logging.ERROR
)


# ==============================================================================================
# State
# ==============================================================================================


@dataclass(frozen=True)
class TodoItem:
    id: str
    text: str
    completed: bool = False


@dataclass(frozen=True)
class TodoState:
    todos: Tuple[TodoItem, ...] = ()
    filter: str = "all"

    @property
    def visible(self) -> Tuple[TodoItem, ...]:
        if self.filter == "active":
            return tuple(t for t in self.todos if not t.completed)
        if self.filter == "completed":
            return tuple(t for t in self.todos if t.completed)
        return self.todos


# ==============================================================================================
# Mutators
# ==============================================================================================


def add_todo(text: str):
    def mutate(draft, prior):
        draft.todos.append(TodoItem(id=str(uuid.uuid4()), text=text))

    return mutate


def toggle_todo(todo_id: str):
    def mutate(draft, prior):
        for index, todo in enumerate(prior.todos):
            if todo.id == todo_id:
                draft.todos[index].completed = not todo.completed

    return mutate


def delete_todo(todo_id: str):
    def mutate(draft, prior):
        draft.todos = tuple(t for t in prior.todos if t.id != todo_id)

    return mutate


def set_filter(value: str):
    def mutate(draft, prior):
        draft.filter = value

    return mutate


def clear_completed(draft, prior):
    draft.todos = tuple(t for t in prior.todos if not t.completed)


# ==============================================================================================
# Session Wiring
# ==============================================================================================


def log_change(event: ChangeEvent) -> None:
    for patch in event.patches:
        logger.debug("💾 %s", patch)


def get_store() -> Store[TodoState]:
    """The store survives reruns inside the session state."""
    if STORE_SESSION_KEY not in st.session_state:
        st.session_state[STORE_SESSION_KEY] = create_store(TodoState, log_change, name="todos")
        logger.info("📝 Initialized todo store")
    return st.session_state[STORE_SESSION_KEY]


def get_view(store: Store[TodoState]) -> ConnectedView[TodoState]:
    if VIEW_SESSION_KEY not in st.session_state:
        st.session_state[VIEW_SESSION_KEY] = store.connect(render_todo_list)
    return st.session_state[VIEW_SESSION_KEY]


# ==============================================================================================
# View
# ==============================================================================================


def render_todo_list() -> None:
    state, update = use_store(get_store())

    st.title("📝 MutaStore TODO")

    input_col, button_col = st.columns(UI_COLUMN_RATIO_INPUT_BUTTON)
    with input_col:
        text = st.text_input("New todo", key="new_todo_text", label_visibility="collapsed")
    with button_col:
        if st.button("Add", use_container_width=True):
            if text.strip():
                update(add_todo(text.strip()))
            else:
                st.warning(EMPTY_TODO_WARNING_MESSAGE)

    choice = st.radio(
        "Show", FILTER_OPTIONS, index=FILTER_OPTIONS.index(state.filter), horizontal=True
    )
    if choice != state.filter:
        update(set_filter(choice))

    for todo in state.visible:
        check_col, text_col, delete_col = st.columns(UI_COLUMN_RATIO_CHECKBOX_TEXT_DELETE)
        with check_col:
            checked = st.checkbox(
                "done",
                value=todo.completed,
                key=f"check_{todo.id}",
                label_visibility="collapsed",
            )
            if checked != todo.completed:
                update(toggle_todo(todo.id))
        with text_col:
            st.markdown(f"~~{todo.text}~~" if todo.completed else todo.text)
        with delete_col:
            if st.button("🗑", key=f"delete_{todo.id}"):
                update(delete_todo(todo.id))

    remaining = sum(1 for t in state.todos if not t.completed)
    st.caption(f"{remaining} item(s) left")
    if st.button("Clear completed", disabled=remaining == len(state.todos)):
        update(clear_completed)


def main() -> None:
    store = get_store()
    view = get_view(store)
    view()
    if view.stale:
        # Updates made during this run are already applied; draw them.
        st.rerun()


if __name__ == "__main__":
    main()
