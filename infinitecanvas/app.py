"""Main Infinite Canvas application."""

import logging
import sys
from pathlib import Path
from typing import Optional

import gi
gi.require_version("Gtk", "4.0")
gi.require_version("Adw", "1")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gio, GLib, Adw

from infinitecanvas import __version__, __app_id__
from infinitecanvas.canvas import GraphCanvas, GLibScheduler
from infinitecanvas.canvas_format import GraphFormatError
from infinitecanvas.config import CanvasConfig, load_config
from infinitecanvas.engine import CanvasEngine
from infinitecanvas.export import CanvasExporter, get_export_dir
from infinitecanvas.host import FileHost

logger = logging.getLogger(__name__)


def _canvas_filter() -> Gtk.FileFilter:
    filter_canvas = Gtk.FileFilter()
    filter_canvas.set_name("JSON Canvas")
    filter_canvas.add_pattern("*.canvas")
    return filter_canvas


class InfiniteCanvasWindow(Adw.ApplicationWindow):
    """Main application window, one canvas document."""

    def __init__(self, app: Adw.Application, config: CanvasConfig):
        super().__init__(application=app)
        self.config = config
        self.canvas_path: Optional[Path] = None

        self.scheduler = GLibScheduler()
        self.host = FileHost(config, self.scheduler)
        self.engine = CanvasEngine(config, self.scheduler, self.host)
        self.engine.on_notification = self._on_notification
        self.exporter = CanvasExporter(config)

        # Window setup
        self.set_title("Infinite Canvas")
        self.set_default_size(1400, 900)

        # Build UI
        self._build_ui()

        # Setup keyboard shortcuts
        self._setup_shortcuts()

        self.connect("close-request", self._on_close_request)

    def _build_ui(self):
        """Build the main UI layout."""
        main_box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL)

        # Header bar
        header = self._build_header()
        main_box.append(header)

        # Canvas
        self.canvas = GraphCanvas(self.engine)
        canvas_frame = Gtk.Frame()
        canvas_frame.set_child(self.canvas)
        canvas_frame.set_vexpand(True)

        # Wrap in toast overlay for in-app notifications
        self.toast_overlay = Adw.ToastOverlay()
        self.toast_overlay.set_child(canvas_frame)
        main_box.append(self.toast_overlay)

        self.set_content(main_box)

    def _build_header(self) -> Adw.HeaderBar:
        """Build the header bar."""
        header = Adw.HeaderBar()
        header.add_css_class("flat")

        # Menu button
        menu_btn = Gtk.MenuButton()
        menu_btn.set_icon_name("open-menu-symbolic")
        menu_btn.set_tooltip_text("Menu")

        menu = Gio.Menu()

        file_section = Gio.Menu()
        file_section.append("Open...", "win.open")
        file_section.append("Save", "win.save")
        file_section.append("Save As...", "win.save-as")
        menu.append_section(None, file_section)

        export_section = Gio.Menu()
        export_menu = Gio.Menu()
        export_menu.append("Export as PNG...", "win.export-png")
        export_menu.append("Export as PDF...", "win.export-pdf")
        export_section.append_submenu("Export", export_menu)
        menu.append_section(None, export_section)

        view_section = Gio.Menu()
        view_section.append("Toggle Grid", "win.toggle-grid")
        menu.append_section(None, view_section)

        help_section = Gio.Menu()
        help_section.append("About Infinite Canvas", "win.show-about")
        menu.append_section(None, help_section)

        popover = Gtk.PopoverMenu()
        popover.set_menu_model(menu)
        menu_btn.set_popover(popover)
        header.pack_start(menu_btn)

        # Open button
        open_btn = Gtk.Button()
        open_btn.set_icon_name("document-open-symbolic")
        open_btn.set_tooltip_text("Open (Ctrl+O)")
        open_btn.connect("clicked", lambda b: self._open())
        header.pack_start(open_btn)

        self.title_label = Gtk.Label(label="Infinite Canvas")
        self.title_label.add_css_class("title")
        header.set_title_widget(self.title_label)

        # Generate ideas
        generate_btn = Gtk.Button()
        generate_btn.set_icon_name("starred-symbolic")
        generate_btn.set_tooltip_text("Generate ideas from selected node (Ctrl+G)")
        generate_btn.connect("clicked", lambda b: self._generate_ideas())
        header.pack_end(generate_btn)

        return header

    def _setup_shortcuts(self):
        """Setup keyboard shortcuts."""
        actions = [
            ("open", self._open, "<Control>o"),
            ("save", self._on_save, "<Control>s"),
            ("save-as", self._save_as, "<Control><Shift>s"),
            ("generate", self._generate_ideas, "<Control>g"),
            ("toggle-grid", self._toggle_grid, None),
            ("export-png", self._export_png, None),
            ("export-pdf", self._export_pdf, None),
            ("show-about", self._show_about, None),
            ("quit", lambda: self.close(), "<Control>q"),
        ]

        for name, callback, accel in actions:
            action = Gio.SimpleAction.new(name, None)
            action.connect("activate", lambda a, p, cb=callback: cb())
            self.add_action(action)

            if accel:
                self.get_application().set_accels_for_action(f"win.{name}", [accel])

    # ==================== Documents ====================

    def load_path(self, path: Path):
        """Open a .canvas file, or start a new one at that location."""
        path = Path(path).expanduser().resolve()
        self._set_canvas_path(path)
        if not path.exists():
            self._show_toast(f"New canvas: {path.name}")
            return
        try:
            report = self.engine.open_file(path)
        except (OSError, GraphFormatError) as exc:
            logger.error("Could not open %s: %s", path, exc)
            self._show_toast(f"Could not open {path.name}: {exc}")
            return
        logger.info("Opened %s: %d nodes, %d edges",
                    path, report.nodes_loaded, report.edges_loaded)

    def _set_canvas_path(self, path: Optional[Path]):
        self.canvas_path = path
        self.host.canvas_path = path
        self.title_label.set_text(path.name if path else "Infinite Canvas")

    def _open(self):
        dialog = Gtk.FileDialog()
        dialog.set_title("Open Canvas")

        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(_canvas_filter())
        dialog.set_filters(filters)

        dialog.open(self, None, self._on_open_response)

    def _on_open_response(self, dialog, result):
        """Handle open dialog response."""
        try:
            file = dialog.open_finish(result)
            if file:
                filepath = file.get_path()
                if not filepath:
                    self._show_toast("Open failed: selected location is not a local file")
                    return
                self.engine.save_now()
                self.load_path(Path(filepath))
        except GLib.Error:
            pass  # User cancelled

    def _on_save(self):
        if self.canvas_path is None:
            self._save_as()
            return
        self.engine.save_now()
        self._show_toast(f"Saved {self.canvas_path.name}")

    def _save_as(self):
        dialog = Gtk.FileDialog()
        dialog.set_title("Save Canvas")
        dialog.set_initial_name(self.canvas_path.name if self.canvas_path else "Untitled.canvas")

        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(_canvas_filter())
        dialog.set_filters(filters)

        dialog.save(self, None, self._on_save_as_response)

    def _on_save_as_response(self, dialog, result):
        """Handle save dialog response."""
        try:
            file = dialog.save_finish(result)
            if file:
                filepath = file.get_path()
                if not filepath:
                    self._show_toast("Save failed: selected location is not a local file")
                    return
                path = Path(filepath)
                if path.suffix != ".canvas":
                    path = path.with_suffix(".canvas")
                self._set_canvas_path(path)
                self.engine.save_now()
                self._show_toast(f"Saved {path.name}")
        except GLib.Error:
            pass

    # ==================== Actions ====================

    def _generate_ideas(self):
        self.engine.generate_ideas()

    def _toggle_grid(self):
        self.config.show_grid = not self.config.show_grid
        self.canvas.queue_draw()

    def _show_about(self):
        """Show about dialog."""
        about = Adw.AboutWindow(
            transient_for=self,
            application_name="Infinite Canvas",
            application_icon="applications-graphics",
            developer_name="Infinite Canvas Project",
            version=__version__,
            license_type=Gtk.License.MIT_X11,
            comments="An infinite node-graph canvas with idea generation",
        )
        about.present()

    def _on_notification(self, message: str, level: str):
        self._show_toast(message)

    def _on_close_request(self, window):
        self.engine.close()
        self.host.close()
        return False

    # ==================== Export ====================

    def _export_name(self, suffix: str) -> str:
        stem = self.canvas_path.stem if self.canvas_path else "canvas"
        return f"{stem}{suffix}"

    def _export_png(self):
        """Export the canvas as PNG."""
        if not self.engine.model.nodes:
            self._show_toast("Nothing to export")
            return

        dialog = Gtk.FileDialog()
        dialog.set_title("Export as PNG")
        dialog.set_initial_name(self._export_name(".png"))
        dialog.set_initial_folder(Gio.File.new_for_path(str(get_export_dir())))

        filter_png = Gtk.FileFilter()
        filter_png.set_name("PNG Images")
        filter_png.add_mime_type("image/png")

        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(filter_png)
        dialog.set_filters(filters)

        dialog.save(self, None, self._on_export_png_response)

    def _on_export_png_response(self, dialog, result):
        """Handle PNG export dialog response."""
        try:
            file = dialog.save_finish(result)
            if file:
                filepath = file.get_path()
                if not filepath:
                    self._show_toast("Export failed: selected location is not a local file")
                    return
                if self.exporter.export_png(self.engine.model, filepath):
                    self._show_toast(f"Exported to {filepath}")
                else:
                    self._show_toast("Export failed")
        except GLib.Error:
            pass  # User cancelled

    def _export_pdf(self):
        """Export the canvas as PDF."""
        if not self.engine.model.nodes:
            self._show_toast("Nothing to export")
            return

        dialog = Gtk.FileDialog()
        dialog.set_title("Export as PDF")
        dialog.set_initial_name(self._export_name(".pdf"))
        dialog.set_initial_folder(Gio.File.new_for_path(str(get_export_dir())))

        filter_pdf = Gtk.FileFilter()
        filter_pdf.set_name("PDF Documents")
        filter_pdf.add_mime_type("application/pdf")

        filters = Gio.ListStore.new(Gtk.FileFilter)
        filters.append(filter_pdf)
        dialog.set_filters(filters)

        dialog.save(self, None, self._on_export_pdf_response)

    def _on_export_pdf_response(self, dialog, result):
        """Handle PDF export dialog response."""
        try:
            file = dialog.save_finish(result)
            if file:
                filepath = file.get_path()
                if not filepath:
                    self._show_toast("Export failed: selected location is not a local file")
                    return
                title = self.canvas_path.stem if self.canvas_path else "Canvas"
                if self.exporter.export_pdf(self.engine.model, filepath, title=title):
                    self._show_toast(f"Exported to {filepath}")
                else:
                    self._show_toast("Export failed")
        except GLib.Error:
            pass

    def _show_toast(self, message: str):
        """Show a toast notification."""
        toast = Adw.Toast(title=message)
        toast.set_timeout(3)
        self.toast_overlay.add_toast(toast)


class InfiniteCanvasApp(Adw.Application):
    """Main application class."""

    def __init__(self):
        super().__init__(
            application_id=__app_id__,
            flags=Gio.ApplicationFlags.HANDLES_OPEN | Gio.ApplicationFlags.NON_UNIQUE
        )
        self.config: Optional[CanvasConfig] = None

    def do_startup(self):
        """Initialize application."""
        Adw.Application.do_startup(self)

        self.config = load_config()

        # Set dark theme
        style_manager = Adw.StyleManager.get_default()
        style_manager.set_color_scheme(Adw.ColorScheme.FORCE_DARK)

    def do_activate(self):
        """Activate application."""
        window = self.get_active_window()
        if not window:
            window = InfiniteCanvasWindow(self, self.config)
        window.present()

    def do_open(self, files, n_files, hint):
        """Open each file given on the command line in its own window."""
        for file in files:
            path = file.get_path()
            if not path:
                continue
            window = InfiniteCanvasWindow(self, self.config)
            window.load_path(Path(path))
            window.present()


def main() -> int:
    """Application entry point."""
    app = InfiniteCanvasApp()
    return app.run(sys.argv)


if __name__ == "__main__":
    sys.exit(main())
