"""
hrgev_compute_tables.py
=======================
Script for generating thermodynamic tables of the excluded-volume crossterms
hadron resonance gas on a (μ_B, T) grid, and partial chemical equilibrium
trajectories.

Speed optimization: along each temperature sweep the partial pressures of the
previous converged point seed the next solve (no reset to the diagonal
solution).

Usage:
    1. Edit the CONFIGURATION section below
    2. Run: python hrgev_compute_tables.py

    OR import and use programmatically:

    from hrgev_compute_tables import compute_table, TableSettings
"""

import os
import numpy as np
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from general_physics_constants import over_T3
from hrg_particles import ConservedCharge, get_light_hadron_system
from hrgev_crossterms_model import ExcludedVolumeCrosstermsModel
from hrgev_parameters import ThermalModelParameters
from hrgpce_model import PartialChemicalEquilibriumModel


#==============================================================================
# SETTINGS DATACLASS
#==============================================================================
@dataclass
class TableSettings:
    """
    Configuration for HRG table generation.

    Grid: one temperature sweep per μ_B value. Temperatures and chemical
    potentials in GeV, radius in fm.
    """
    # Model selection
    radius: float = 0.3
    quantum_statistics: bool = False
    include_nuclei: bool = False
    use_width: bool = False
    disable_bbar_repulsion: bool = False
    virial_file: Optional[str] = None    # Overrides radius if given

    # Grid definition
    T_values: np.ndarray = field(default_factory=lambda: np.linspace(0.100, 0.170, 15))
    muB_values: List[float] = field(default_factory=lambda: [0.0])
    muQ: float = 0.0
    muS: float = 0.0

    # Options
    compute_fluctuations: bool = True
    carry_partials: bool = True

    # Output control
    print_results: bool = True
    print_first_n: int = 5
    print_errors: bool = True
    print_timing: bool = True

    # File output
    save_to_file: bool = False
    output_filename: Optional[str] = None
    output_columns: List[str] = field(default_factory=lambda: [
        'T', 'muB',
        'P', 'e', 's', 'nB',
        'p_T4', 'e_T4', 'I_T4', 's_T3',
        'chi2B', 'chi2Q', 'chi2S', 'chi11BQ', 'chi11BS', 'chi11QS',
        'converged'
    ])


@dataclass
class TableRow:
    """One grid point of a thermodynamic table (GeV, fm units)."""
    T: float
    muB: float
    P: float
    e: float
    s: float
    nB: float
    p_T4: float
    e_T4: float
    I_T4: float
    s_T3: float
    chi2B: float = 0.0
    chi2Q: float = 0.0
    chi2S: float = 0.0
    chi11BQ: float = 0.0
    chi11BS: float = 0.0
    chi11QS: float = 0.0
    converged: bool = False
    iterations: int = 0
    max_difference: float = 0.0


def build_model(settings: TableSettings) -> ExcludedVolumeCrosstermsModel:
    """Particle system and crossterms model configured by the settings."""
    system = get_light_hadron_system(settings.quantum_statistics, settings.include_nuclei)
    model = ExcludedVolumeCrosstermsModel(system, radius=settings.radius,
                                          use_width=settings.use_width)
    if settings.virial_file is not None:
        model.read_interaction_parameters(settings.virial_file)
    if settings.disable_bbar_repulsion:
        model.disable_bbar_repulsion()
    return model


def _row_from_model(model: ExcludedVolumeCrosstermsModel, compute_fluctuations: bool) -> TableRow:
    p = model.parameters
    T = p.T
    row = TableRow(
        T=T,
        muB=p.muB,
        P=model.calculate_pressure(),
        e=model.calculate_energy_density(),
        s=model.calculate_entropy_density(),
        nB=model.calculate_baryon_density(),
        p_T4=model.pressure_over_T4(),
        e_T4=model.energy_density_over_T4(),
        I_T4=model.trace_anomaly_over_T4(),
        s_T3=model.entropy_density_over_T3(),
        converged=model.success,
        iterations=model.iterations,
        max_difference=model.max_difference,
    )
    if compute_fluctuations:
        model.calculate_fluctuations()
        B, Q, S = ConservedCharge.BARYON, ConservedCharge.ELECTRIC, ConservedCharge.STRANGENESS
        row.chi2B = model.susc(B, B)
        row.chi2Q = model.susc(Q, Q)
        row.chi2S = model.susc(S, S)
        row.chi11BQ = model.susc(B, Q)
        row.chi11BS = model.susc(B, S)
        row.chi11QS = model.susc(Q, S)
    return row


#==============================================================================
# TABLE GENERATOR
#==============================================================================
def compute_table(settings: TableSettings) -> Dict[float, List[TableRow]]:
    """
    Compute one temperature sweep per μ_B value.

    Returns:
        Dictionary μ_B → list of TableRow (one per temperature)
    """
    model = build_model(settings)
    T_arr = np.asarray(settings.T_values, dtype=float)
    muB_list = list(settings.muB_values)
    n_points = len(T_arr)
    n_tables = len(muB_list)

    if settings.print_results:
        print("=" * 70)
        print("HRG CROSSTERMS TABLE GENERATION")
        print("=" * 70)
        print(f"\nSpecies: {model.n_species}, radius: {settings.radius} fm")
        print(f"Quantum statistics: {settings.quantum_statistics}")
        print(f"\nTemperature grid: {n_points} points")
        print(f"  T range: [{T_arr[0]*1e3:.1f}, {T_arr[-1]*1e3:.1f}] MeV")
        print(f"μ_B values: {n_tables}")
        print()

    all_results = {}
    total_start = time.time()

    for idx, muB in enumerate(muB_list):
        if settings.print_results:
            print("-" * 70)
            print(f"[{idx+1}/{n_tables}] Computing table for muB={muB*1e3:.1f} MeV...")

        start_time = time.time()
        results = []
        have_seed = False

        for i, T in enumerate(T_arr):
            model.set_parameters(ThermalModelParameters(T=T, muB=muB, muQ=settings.muQ,
                                                        muS=settings.muS))
            reset = not (settings.carry_partials and have_seed)
            model.calculate_densities(reset_partials=reset)
            if not model.success and not reset:
                model.calculate_densities(reset_partials=True)
            have_seed = model.success

            row = _row_from_model(model, settings.compute_fluctuations)
            results.append(row)

            if settings.print_results:
                if i < settings.print_first_n or (settings.print_errors and not row.converged):
                    status = "OK" if row.converged else "FAILED"
                    print(f"[{i:4d}] T={T*1e3:7.2f} MeV [{status}] p/T^4={row.p_T4:.5f} "
                          f"err={row.max_difference:.2e}")

        elapsed = time.time() - start_time
        all_results[muB] = results

        if settings.print_timing:
            n_converged = sum(1 for r in results if r.converged)
            print(f"\n  Completed muB={muB*1e3:.1f} MeV in {elapsed:.2f} s "
                  f"({elapsed*1000/n_points:.1f} ms/point)")
            print(f"  Converged: {n_converged}/{n_points} ({100*n_converged/n_points:.1f}%)")

    total_elapsed = time.time() - total_start
    if settings.print_timing:
        print("\n" + "=" * 70)
        print(f"Total time: {total_elapsed:.2f} s")

    if settings.save_to_file:
        save_results(all_results, settings)

    return all_results


def compute_pce_trajectory(settings: TableSettings, freezeout: ThermalModelParameters,
                           T_values: np.ndarray) -> List[TableRow]:
    """Thermodynamics along a PCE trajectory starting at the given chemical freeze-out."""
    model = build_model(settings)
    pce = PartialChemicalEquilibriumModel(model)
    pce.set_chemical_freezeout(freezeout)

    rows = []
    for T in T_values:
        state = pce.calculate_pce(T)
        row = _row_from_model(model, False)
        row.converged = state.converged
        row.iterations = state.iterations
        row.max_difference = state.max_difference
        rows.append(row)
        if settings.print_results:
            status = "OK" if state.converged else "FAILED"
            print(f"PCE T={T*1e3:7.2f} MeV [{status}] V={state.V:.4e} fm^3 "
                  f"s/T^3={row.s_T3:.4f}")
    return rows


def save_results(all_results: Dict[float, List[TableRow]], settings: TableSettings):
    """Save results to file (whitespace separated, '#' header)."""
    if settings.output_filename:
        filename = settings.output_filename
    else:
        stat_tag = "quantum" if settings.quantum_statistics else "boltzmann"
        filename = f"hrgev_tables_output/hrgev_r{settings.radius:.2f}_{stat_tag}.dat"
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    columns = list(settings.output_columns)
    with open(filename, 'w') as f:
        f.write(f"# HRG crossterms table: radius {settings.radius} fm, "
                f"{'quantum' if settings.quantum_statistics else 'Boltzmann'} statistics\n")
        f.write("# Units: T, muB [GeV]; P, e [GeV/fm^3]; s, nB [fm^-3]\n")
        f.write("# " + " ".join(f"{col:>14}" for col in columns) + "\n")
        for results in all_results.values():
            for r in results:
                if not r.converged:
                    continue
                row = []
                for col in columns:
                    val = getattr(r, col, 0.0)
                    if isinstance(val, bool):
                        val = 1 if val else 0
                    row.append(f"{val:>14.6e}" if isinstance(val, float) else f"{val:>14}")
                f.write(" ".join(row) + "\n")

    print(f"\nSaved to: {filename}")
    return filename


def results_to_arrays(results: List[TableRow]) -> Dict[str, np.ndarray]:
    """Convert list of TableRow to dictionary of numpy arrays (converged points)."""
    attrs = ['T', 'muB', 'P', 'e', 's', 'nB', 'p_T4', 'e_T4', 'I_T4', 's_T3',
             'chi2B', 'chi2Q', 'chi2S', 'chi11BQ', 'chi11BS', 'chi11QS', 'max_difference']
    arrays = {}
    for attr in attrs:
        arrays[attr] = np.array([getattr(r, attr) for r in results if r.converged])
    arrays['converged'] = np.array([r.converged for r in results])
    # Baryon density in units of T³
    arrays['nB_T3'] = over_T3(arrays['nB'], arrays['T'])
    return arrays


#==============================================================================
# CONFIGURATION (EDIT THIS SECTION)
#==============================================================================
settings = TableSettings(
    # ===================== MODEL =====================
    radius=0.3,                  # fm, common hard-core radius
    quantum_statistics=True,
    include_nuclei=False,
    disable_bbar_repulsion=False,

    # ===================== GRID =====================
    T_values=np.linspace(0.080, 0.170, 19),
    muB_values=[0.0, 0.1, 0.2, 0.3],

    # ===================== OUTPUT =====================
    print_results=True,
    print_first_n=1,
    print_errors=True,
    print_timing=True,
    save_to_file=True,
    output_filename=None,  # Auto-generate: hrgev_r{radius}_{statistics}.dat
)


#==============================================================================
# MAIN
#==============================================================================
if __name__ == "__main__":
    print("\n" + "=" * 70)
    print("HRG EXCLUDED-VOLUME CROSSTERMS TABLE GENERATOR")
    print("=" * 70 + "\n")

    all_results = compute_table(settings)

    if len(all_results) == 1:
        key = list(all_results.keys())[0]
        data = results_to_arrays(all_results[key])
        print("\n" + "=" * 70)
        print("DONE!")
        print(f"  T:     [{data['T'].min()*1e3:.1f}, {data['T'].max()*1e3:.1f}] MeV")
        print(f"  p/T^4: [{data['p_T4'].min():.4f}, {data['p_T4'].max():.4f}]")
    else:
        print(f"\nGenerated {len(all_results)} tables")

    print("=" * 70 + "\n")
