"""
plot_hrgev_thermodynamics.py
============================
Script to plot HRG crossterms tables produced by hrgev_compute_tables.py.

This script generates:
1. Lattice-style thermodynamics (p/T⁴, ε/T⁴, (ε-3p)/T⁴, s/T³) vs T
2. Second-order susceptibilities (χ2 and χ11 of B, Q, S) vs T
3. Stable-hadron yields and volume along a PCE trajectory

One curve per μ_B value found in the table.

Usage:
    python plot_hrgev_thermodynamics.py

Or import and call specific functions:
    from plot_hrgev_thermodynamics import load_hrg_table, plot_thermodynamics
"""
import numpy as np
import matplotlib.pyplot as plt
import pandas as pd
from pathlib import Path

from general_plotting_info import (
    set_global_style, setup_scientific_figure, add_panel_labels, apply_style,
    get_sequence_color, save_figure, STYLE, FONTS, LABELS, SPECIES_COLORS
)

# =============================================================================
# CONSTANTS
# =============================================================================
# Table column names (default output_columns of hrgev_compute_tables)
COLUMNS = ['T', 'muB', 'P', 'e', 's', 'nB',
           'p_T4', 'e_T4', 'I_T4', 's_T3',
           'chi2B', 'chi2Q', 'chi2S', 'chi11BQ', 'chi11BS', 'chi11QS',
           'converged']

PCE_SPECIES = ['pi+', 'K+', 'p', 'Lambda', 'Xi-', 'Omega-']


# =============================================================================
# DATA LOADING
# =============================================================================
def load_hrg_table(filepath, columns=None):
    """
    Load an HRG table (whitespace separated, '#' comments).

    Adds T_MeV and muB_MeV columns.
    """
    data = pd.read_csv(filepath, sep=r'\s+', comment='#',
                       names=columns if columns is not None else COLUMNS)
    data['T_MeV'] = data['T'] * 1e3
    data['muB_MeV'] = data['muB'] * 1e3
    return data


def filter_data(df, muB=None, converged_only=True):
    """Rows at the given μ_B (GeV), sorted in temperature."""
    mask = pd.Series(True, index=df.index)
    if muB is not None:
        mask &= np.isclose(df['muB'], muB, atol=1e-9)
    if converged_only and 'converged' in df.columns:
        mask &= df['converged'] == 1
    return df[mask].sort_values('T')


# =============================================================================
# PLOTTING FUNCTIONS
# =============================================================================
def _plot_columns_vs_T(df, columns, save_path=None, nrows=2, ncols=2):
    set_global_style()
    fig, axes = setup_scientific_figure(nrows, ncols, gray_background=True)
    axes = np.atleast_1d(axes).flatten()
    muB_values = sorted(df['muB'].unique())

    for i, col in enumerate(columns):
        ax = axes[i]
        for j, muB in enumerate(muB_values):
            data = filter_data(df, muB=muB)
            ax.plot(data['T_MeV'], data[col], color=get_sequence_color(j),
                    lw=STYLE['linewidth'],
                    label=rf'$\mu_B = {muB*1e3:.0f}$ MeV' if i == 0 else None)
        ax.set_xlabel(LABELS['T'], fontsize=FONTS['label'])
        ax.set_ylabel(LABELS[col], fontsize=FONTS['label'])
        apply_style(ax, legend=(i == 0))

    add_panel_labels(axes[:len(columns)])
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path)
    return fig, axes


def plot_thermodynamics(df, save_path=None):
    """p/T⁴, ε/T⁴, (ε-3p)/T⁴ and s/T³ vs T, one curve per μ_B."""
    return _plot_columns_vs_T(df, ['p_T4', 'e_T4', 'I_T4', 's_T3'], save_path)


def plot_susceptibilities(df, save_path=None):
    """χ2 and χ11 of the conserved charges vs T."""
    return _plot_columns_vs_T(df, ['chi2B', 'chi2Q', 'chi2S',
                                   'chi11BQ', 'chi11BS', 'chi11QS'],
                              save_path, nrows=2, ncols=3)


def plot_pce_trajectory(states, system, save_path=None):
    """
    Final-state yields N_i(T)/N_i(T_ch) and volume along a PCE trajectory.

    Parameters:
        states: list of hrgpce_model.PCEState (first entry at T_ch)
        system: ParticleSystem of the PCE model
    """
    set_global_style()
    fig, axes = setup_scientific_figure(1, 2, gray_background=True)

    T_MeV = np.array([st.T for st in states]) * 1e3
    V = np.array([st.V for st in states])

    ax = axes[0]
    for name in PCE_SPECIES:
        idx = next((i for i, p in enumerate(system.particles) if p.name == name), -1)
        if idx < 0:
            continue
        yields = np.array([st.densities_total[idx] * st.V for st in states])
        ax.plot(T_MeV, yields / yields[0], color=SPECIES_COLORS.get(name, 'black'),
                lw=STYLE['linewidth'], label=name)
    ax.set_xlabel(LABELS['T'], fontsize=FONTS['label'])
    ax.set_ylabel(LABELS['yield_ratio'], fontsize=FONTS['label'])
    ax.invert_xaxis()
    apply_style(ax)

    ax = axes[1]
    ax.semilogy(T_MeV, V, color=get_sequence_color(3), lw=STYLE['linewidth'])
    ax.set_xlabel(LABELS['T'], fontsize=FONTS['label'])
    ax.set_ylabel(LABELS['V'], fontsize=FONTS['label'])
    ax.invert_xaxis()
    apply_style(ax, legend=False)

    add_panel_labels(axes)
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path)
    return fig, axes


# =============================================================================
# MAIN EXECUTION
# =============================================================================
def main():
    """Generate all plots from the default table."""
    print("Loading HRG table...")
    table_file = Path('hrgev_tables_output') / 'hrgev_r0.30_quantum.dat'
    if not table_file.exists():
        print(f"Error: {table_file} not found (run hrgev_compute_tables.py first)")
        return

    df = load_hrg_table(table_file)
    print(f"Loaded: {len(df)} points, μ_B values: {sorted(df['muB_MeV'].unique())} MeV")

    output_dir = Path('hrgev_plots')
    output_dir.mkdir(exist_ok=True)

    print("\nGenerating thermodynamic plots...")
    plot_thermodynamics(df, save_path=str(output_dir / 'thermodynamics'))

    print("Generating susceptibility plots...")
    plot_susceptibilities(df, save_path=str(output_dir / 'susceptibilities'))

    print("Computing PCE trajectory...")
    from hrgev_compute_tables import TableSettings, build_model
    from hrgev_parameters import get_default_parameters
    from hrgpce_model import PartialChemicalEquilibriumModel

    model = build_model(TableSettings(radius=0.3, quantum_statistics=True))
    pce = PartialChemicalEquilibriumModel(model)
    freezeout = get_default_parameters()
    pce.set_chemical_freezeout(freezeout)
    states = [pce.calculate_pce(freezeout.T)]
    states += pce.calculate_trajectory(np.arange(0.150, 0.099, -0.005))
    plot_pce_trajectory(states, model.system,
                        save_path=str(output_dir / 'pce_trajectory'))

    print(f"\nPlots saved to {output_dir}/")
    plt.show()


if __name__ == '__main__':
    main()
