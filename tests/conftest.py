import pytest

from hrg_particles import DecayChannel, DecayType, Particle, ParticleSystem


def make_stable(pdg, name, mass, g, B=0, Q=0, S=0, stat=0):
    return Particle(pdg=pdg, name=name, mass=mass, degeneracy=g, statistics=stat,
                    baryon_charge=B, electric_charge=Q, strangeness=S,
                    stable=True, decay_type=DecayType.WEAK)


def make_resonance(pdg, name, mass, g, channels, B=0, Q=0, S=0, width=0.1, threshold=0.0):
    return Particle(pdg=pdg, name=name, mass=mass, degeneracy=g, statistics=0,
                    baryon_charge=B, electric_charge=Q, strangeness=S,
                    width=width, threshold=threshold, stable=False,
                    decay_type=DecayType.STRONG,
                    decays=[DecayChannel(br, d) for br, d in channels])


@pytest.fixture
def toy_system():
    """Pions, nucleons and two strong resonances, Boltzmann statistics."""
    return ParticleSystem([
        make_stable(211, "pi+", 0.13957, 1, Q=1),
        make_stable(-211, "pi-", 0.13957, 1, Q=-1),
        make_stable(111, "pi0", 0.134977, 1),
        make_resonance(113, "rho0", 0.77526, 3, [(1.0, [211, -211])], width=0.149,
                       threshold=0.28),
        make_stable(2212, "p", 0.938272, 2, B=1, Q=1),
        make_stable(2112, "n", 0.939565, 2, B=1),
        make_stable(-2212, "anti-p", 0.938272, 2, B=-1, Q=-1),
        make_stable(-2112, "anti-n", 0.939565, 2, B=-1),
        make_resonance(2224, "Delta++", 1.232, 4, [(1.0, [2212, 211])], B=1, Q=2,
                       width=0.117, threshold=1.08),
    ])
