"""
general_plotting_info.py
========================
Shared matplotlib styling for HRG thermodynamics and fluctuation plots.

Provides the rcParams used by every plot script, figure presets for the
panel grids of plot_hrgev_thermodynamics.py, a palette indexed by curve
(usually one curve per μ_B) and one keyed by final-state hadron, and the
axis labels of the table columns written by hrgev_compute_tables.py.

Usage:
    from general_plotting_info import set_global_style, setup_scientific_figure, LABELS

    set_global_style()
    fig, axes = setup_scientific_figure(nrows=2, ncols=3)
    add_panel_labels(axes)
"""
import matplotlib.pyplot as plt
import numpy as np

# =============================================================================
# FONTS AND SIZES
# =============================================================================
FONTS = {
    'family': 'serif',
    'serif': ['CMU Serif', 'DejaVu Serif'],
    'mathtext': 'cm',
    'title': 13,
    'label': 12,
    'tick': 10,
    'legend': 9,
    'panel_label': 13,
}

# Figure size for each (nrows, ncols) grid used by the plot scripts
FIGSIZES = {
    (1, 1): (5.5, 4.5),
    (1, 2): (10, 4.2),
    (2, 2): (8.5, 7.5),
    (2, 3): (12.5, 7.5),
}

STYLE = {
    'figsize_default': (7, 5),
    'dpi': 150,
    'linewidth': 1.8,
    'markersize': 4,
    'grid_alpha': 0.3,
    'grid_linewidth': 0.5,
    'background': '#f4f4f4',
}

# =============================================================================
# COLORS
# =============================================================================
STANDARD_COLORS = {
    'Black': (0.1, 0.1, 0.1),
    'Blue': (0.24, 0.6, 0.8),
    'Red': (0.8, 0.25, 0.33),
    'Green': (0.24, 0.6, 0.44),
    'Orange': (0.9, 0.4, 0.0),
    'Purple': (0.5, 0.35, 0.65),
    'Cyan': (0.1, 0.6, 0.6),
    'Brown': (0.55, 0.35, 0.2),
}

# Curves are colored in this order (μ_B = 0 first)
COLORS_SEQ = [STANDARD_COLORS[name] for name in
              ('Black', 'Blue', 'Red', 'Green', 'Orange', 'Purple', 'Cyan', 'Brown')]

SPECIES_COLORS = {
    'pi+': STANDARD_COLORS['Black'],
    'K+': STANDARD_COLORS['Orange'],
    'p': STANDARD_COLORS['Blue'],
    'Lambda': STANDARD_COLORS['Green'],
    'Xi-': STANDARD_COLORS['Purple'],
    'Omega-': STANDARD_COLORS['Red'],
    'd': STANDARD_COLORS['Brown'],
}

# =============================================================================
# LABELS (one per table column)
# =============================================================================
LABELS = {
    'T': r'$T$ [MeV]',
    'muB': r'$\mu_B$ [MeV]',
    'P': r'$P$ [GeV fm$^{-3}$]',
    'e': r'$\varepsilon$ [GeV fm$^{-3}$]',
    's': r'$s$ [fm$^{-3}$]',
    'nB': r'$n_B$ [fm$^{-3}$]',
    'p_T4': r'$p/T^4$',
    'e_T4': r'$\varepsilon/T^4$',
    'I_T4': r'$(\varepsilon - 3p)/T^4$',
    's_T3': r'$s/T^3$',
    'chi2B': r'$\chi_2^B$',
    'chi2Q': r'$\chi_2^Q$',
    'chi2S': r'$\chi_2^S$',
    'chi11BQ': r'$\chi_{11}^{BQ}$',
    'chi11BS': r'$\chi_{11}^{BS}$',
    'chi11QS': r'$\chi_{11}^{QS}$',
    'V': r'$V$ [fm$^3$]',
    'yield_ratio': r'$N_i(T)/N_i(T_{\rm ch})$',
}


def set_global_style():
    """Apply the fonts and resolution above to matplotlib's rcParams."""
    plt.rcParams.update({
        'font.family': FONTS['family'],
        'font.serif': FONTS['serif'],
        'font.size': FONTS['label'],
        'mathtext.fontset': FONTS['mathtext'],
        'axes.labelsize': FONTS['label'],
        'axes.titlesize': FONTS['title'],
        'axes.formatter.use_mathtext': True,
        'xtick.labelsize': FONTS['tick'],
        'ytick.labelsize': FONTS['tick'],
        'xtick.direction': 'in',
        'ytick.direction': 'in',
        'legend.fontsize': FONTS['legend'],
        'legend.frameon': False,
        'figure.dpi': STYLE['dpi'],
        'savefig.dpi': STYLE['dpi'],
        'savefig.bbox': 'tight',
    })


def setup_scientific_figure(nrows=1, ncols=1, figsize=None,
                            gray_background=False, sharex=False):
    """
    Create a figure sized for its panel grid.

    Returns:
        fig, axes: axes is a numpy array whenever there is more than one panel
    """
    if figsize is None:
        figsize = FIGSIZES.get((nrows, ncols), STYLE['figsize_default'])
    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, sharex=sharex)
    if gray_background:
        for ax in np.atleast_1d(axes).ravel():
            ax.set_facecolor(STYLE['background'])
    return fig, axes


def add_panel_labels(axes, labels=None):
    """Write (a), (b), ... in the upper left corner of each panel."""
    axes_flat = np.atleast_1d(axes).ravel()
    if labels is None:
        labels = ['({})'.format('abcdefghijklmnopqrstuvwxyz'[i]) for i in range(len(axes_flat))]
    for ax, label in zip(axes_flat, labels):
        ax.text(0.04, 0.96, label, transform=ax.transAxes, ha='left', va='top',
                fontsize=FONTS['panel_label'], fontweight='bold')


def apply_style(ax, grid=True, legend=True):
    """Grid and (if any curve is labelled) legend for one panel."""
    if grid:
        ax.grid(True, alpha=STYLE['grid_alpha'], linewidth=STYLE['grid_linewidth'])
    if legend and ax.get_legend_handles_labels()[0]:
        ax.legend()


def get_sequence_color(index):
    return COLORS_SEQ[index % len(COLORS_SEQ)]


def save_figure(fig, filename, formats=('png', 'pdf')):
    """Write filename.<fmt> for every format."""
    for fmt in formats:
        fig.savefig(f'{filename}.{fmt}', facecolor='white')
    print(f"Saved: {filename} ({', '.join(formats)})")
