# Third-party
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

# Local imports
from chunkdm.core.models import CatalogEntry
from chunkdm.datasets.dataset import Dataset
from chunkdm.query.optimizer import JoinStep, PhysicalPlan, compile_plan
from chunkdm.query.plan import QueryPlan
from chunkdm.repositories.catalog_repository import CatalogRepository

# -----------------------------
# Display Service
# -----------------------------


class DisplayService:
    """Service for Rich console formatting and visualization."""

    def __init__(self, catalog_repo: CatalogRepository, console: Console | None = None) -> None:
        self.catalog_repo: CatalogRepository = catalog_repo
        self.console = console or Console()

    # -----------------------------
    # Display Operations
    # -----------------------------

    def show_dataset_info(self, entry: CatalogEntry, dataset: Dataset) -> None:
        """Display comprehensive information about a dataset.

        Args:
            entry: Catalog entry of the dataset
            dataset: Opened dataset, for its chunk table
        """
        parents: list[CatalogEntry] = [
            self.catalog_repo.load(parent_id) for parent_id in entry.parent_ids
        ]
        panel: Panel = self._format_entry_panel(entry, dataset, parents)
        self.console.print(panel)

    def show_datasets_table(self, name_filter: str | None = None) -> None:
        """Display all datasets in a rich table.

        Args:
            name_filter: Optional name pattern to filter by
        """
        entries: list[CatalogEntry] = self.catalog_repo.list_datasets(
            name_filter=name_filter
        )

        table: Table = Table(
            title="Datasets", show_header=True, header_style="bold magenta"
        )
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="yellow")
        table.add_column("Created", style="blue")
        table.add_column("Rows", justify="right", style="white")
        table.add_column("Cols", justify="right", style="white")
        table.add_column("Parents", justify="right", style="green")

        for entry in entries:
            table.add_row(
                entry.name,
                entry.id[:8],
                entry.created_at.split("T")[0],
                f"{entry.row_count:,}",
                str(entry.column_count),
                str(len(entry.parent_ids)) if entry.parent_ids else "-",
            )

        self.console.print(table)

    def show_plan(self, plan: QueryPlan) -> None:
        """Display the optimized physical plan as a tree."""
        physical: PhysicalPlan = compile_plan(plan)
        root: Tree = Tree(
            f"[bold cyan]OUTPUT[/] {escape(_bracketed(physical.schema.names))}"
        )
        self._add_plan_node(root, physical)
        self.console.print(root)

    # -----------------------------
    # Formatting Helpers
    # -----------------------------

    def _format_entry_panel(
        self, entry: CatalogEntry, dataset: Dataset, parents: list[CatalogEntry]
    ) -> Panel:
        sections: list[str] = []

        # Basic info
        sections.append(f"[bold cyan]ID:[/] {entry.id}")
        sections.append(f"[bold cyan]Name:[/] {entry.name}")
        sections.append(f"[bold cyan]Path:[/] {entry.path}")
        sections.append(f"[bold cyan]Created:[/] {entry.created_at}")
        if dataset.index.source:
            sections.append(f"[bold cyan]Source:[/] {dataset.index.source}")

        # Storage
        sections.append("")
        sections.append("[bold yellow]Storage:[/]")
        sections.append(f"  Rows: {dataset.row_count:,}")
        sections.append(f"  Chunks: {len(dataset.chunks)}")
        sections.append(f"  Chunk size: {dataset.index.chunk_row_count:,}")

        # Schema
        sections.append("")
        sections.append(f"[bold green]Schema:[/] {len(dataset.schema)} columns")
        for spec in dataset.schema.columns:
            sections.append(f"  {spec.name}: {spec.type.value}")

        # Description
        if entry.description:
            sections.append("")
            sections.append("[bold blue]Description:[/]")
            sections.append(f"  {entry.description}")

        # Lineage
        if parents:
            sections.append("")
            sections.append("[bold magenta]Derived from:[/]")
            for parent in parents:
                sections.append(
                    f"  {parent.name} ({parent.created_at.split('T')[0]})"
                )

        return Panel(
            "\n".join(sections),
            title=f"Dataset: {entry.name}",
            border_style="bright_blue",
        )

    def _add_plan_node(self, node: Tree, physical: PhysicalPlan) -> None:
        """Add a physical plan's steps under node, innermost scan first."""
        source = physical.source
        detail = (
            f"{source.path.name} ({len(source.chunks)} chunks, {source.row_count:,} rows) "
            f"{_bracketed(physical.scan_columns)}"
        )
        if physical.scan_predicate is not None:
            detail += f" WHERE {physical.scan_predicate!r}"
        scan = f"[green]SCAN[/] {escape(detail)}"
        node.add(scan)
        for step in physical.steps:
            if isinstance(step, JoinStep):
                join_node: Tree = node.add(
                    f"[magenta]HASH JOIN[/] ON {step.on!r} "
                    f"(build side: {step.build_side})"
                )
                self._add_plan_node(join_node, step.right)
            else:
                node.add(f"[yellow]{escape(step.describe())}[/]")


def _bracketed(names: tuple[str, ...]) -> str:
    return f"[{', '.join(names)}]"
