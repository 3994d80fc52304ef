"""FlyPoly visualization library.

Modules:
  - style: Dark theme colours and helpers
  - trajectories: Genotype proportions and allele frequency over generations
"""

from flypoly.viz.style import (  # noqa: F401
    DARK_BG,
    DARK_PANEL,
    GENOTYPE_COLORS,
    GRID_COLOR,
    REPLICATE_COLORS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
)

from flypoly.viz.trajectories import (  # noqa: F401
    plot_allele_frequency,
    plot_genotype_trajectories,
)
