"""TextUI - Textual-based terminal UI for Sorta."""

import threading
from typing import Callable, Optional

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Header, Footer, Static, RichLog, Tree
from textual.widgets.tree import TreeNode as UITreeNode
from textual.binding import Binding

from sorta import Sorta, __version__
from workflows.tree import TreeNode


def node_label(node: TreeNode) -> str:
    """Tree label for a storage node."""
    if node.is_folder:
        return f"📁 {node.name}"
    return f"📄 {node.name}"


def _add_children(ui_node: UITreeNode, node: TreeNode) -> None:
    for child in node.children or []:
        if child.is_folder:
            branch = ui_node.add(node_label(child), data=child, expand=False)
            _add_children(branch, child)
        else:
            ui_node.add_leaf(node_label(child), data=child)


class HeaderInfo(Static):
    """Header widget showing the owner and storage."""

    def __init__(self, owner: str = "", storage: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.owner = owner
        self.storage = storage

    def compose(self) -> ComposeResult:
        yield Static(f"User: {self.owner}", id="owner-line")
        yield Static(f"Storage: {self.storage}", id="storage-line")


class SortaApp(App):
    """Textual app for Sorta: storage tree and activity log."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 1;
        grid-rows: auto 1fr auto;
    }

    #header-info {
        height: auto;
        padding: 0 1;
        background: $surface;
        border-bottom: solid $primary;
    }

    #main-content {
        height: 1fr;
    }

    #left-panel {
        width: 1fr;
        border-right: solid $primary;
    }

    #right-panel {
        width: 1fr;
    }

    .panel-title {
        height: 1;
        background: $primary;
        color: $text;
        text-align: center;
        text-style: bold;
    }

    #storage-tree, .log-panel {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("r", "refresh_tree", "Refresh"),
        Binding("d", "download", "Download link"),
        Binding("q", "quit", "Quit"),
        Binding("ctrl+c", "quit", "Quit"),
    ]

    def __init__(self, owner: str = "", storage: str = "",
                 load_tree: Optional[Callable[[], TreeNode]] = None,
                 link_for: Optional[Callable[[TreeNode], str]] = None) -> None:
        """Create the app.

        Args:
            owner: Owner id shown in the header
            storage: Storage display name shown in the header
            load_tree: Builds the owner's tree; runs in a worker thread
            link_for: Returns a download URL for a file node; runs in a worker thread
        """
        super().__init__()
        self.owner = owner
        self.storage = storage
        self._load_tree = load_tree
        self._link_for = link_for

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield HeaderInfo(self.owner, self.storage, id="header-info")

        with Horizontal(id="main-content"):
            with Vertical(id="left-panel"):
                yield Static("MY STORAGE", classes="panel-title")
                yield Tree("My Storage", id="storage-tree")

            with Vertical(id="right-panel"):
                yield Static("ACTIVITY", classes="panel-title")
                yield RichLog(id="activity-log", classes="log-panel", highlight=True, markup=True)

        yield Footer()

    def on_mount(self) -> None:
        """Called when app is mounted - wire up Sorta UI references."""
        self.title = f"Sorta v{__version__}"
        Sorta.set_app(self)
        self.action_refresh_tree()

    def on_unmount(self) -> None:
        """Called when app is unmounted - clear Sorta UI references."""
        Sorta.set_app(None)

    def _in_background(self, func: Callable[[], None]) -> None:
        threading.Thread(target=func, daemon=True).start()

    def action_refresh_tree(self) -> None:
        """Reload the storage tree in a background thread."""
        if not self._load_tree:
            return

        def load() -> None:
            Sorta.print_log("Loading storage structure...")
            try:
                root = self._load_tree()
            except Exception as e:
                Sorta.print_log(f"[red]Failed to load structure: {e}[/red]")
                return
            self.call_from_thread(self.show_tree, root)

        self._in_background(load)

    def action_download(self) -> None:
        """Sign a download URL for the selected file."""
        tree = self.query_one("#storage-tree", Tree)
        selected = tree.cursor_node
        node = selected.data if selected is not None else None
        if node is None or node.is_folder or not self._link_for:
            self.add_log("Select a file first")
            return

        def sign() -> None:
            try:
                url = self._link_for(node)
            except Exception as e:
                Sorta.print_log(f"[red]Could not create link for {node.logical_path}: {e}[/red]")
                return
            Sorta.print_log(f"{node.logical_path}\n{url}")

        self._in_background(sign)

    def show_tree(self, root: TreeNode) -> None:
        """Replace the displayed tree."""
        tree = self.query_one("#storage-tree", Tree)
        tree.clear()
        tree.root.set_label(root.name)
        tree.root.data = root
        _add_children(tree.root, root)
        tree.root.expand()
        self.add_log(f"Loaded {root.name}")

    def add_log(self, message: str) -> None:
        """Add a line to the activity log."""
        log = self.query_one("#activity-log", RichLog)
        log.write(message)
