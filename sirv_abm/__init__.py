"""SIRV-ABM: Proximity-based agent model of an epidemic with interventions.

A discrete-tick, individual-based model coupling:
  - SIRV compartmental states (Susceptible, Infectious, Recovered, Vaccinated)
  - Proximity transmission between mobile agents (one tick = one day)
  - Toggleable interventions: quarantine, vaccination, social distancing,
    points of interest, departments, external reinfection
  - One-shot significant-point detection (breaking, recovery, survival)

Rendering and physical path following live outside the package; the engine
talks to them through the movement backend protocol (backend.py) and an
event queue drained by the host (events.py).
"""

__version__ = "0.1.0"
