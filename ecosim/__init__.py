"""ecosim: individual-based tri-trophic ecosystem simulation.

Yearly ticks over three fixed-capacity populations:
  - Trees (producers): allometric growth, crowding, stress and age mortality
  - Deer (herbivores): stamina-ordered browsing on young trees
  - Wolves (predators): pack hunting of deer
"""

__version__ = "0.1.0"
