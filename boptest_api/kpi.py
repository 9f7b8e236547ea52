"""
Labels and a tabular view of the KPIs computed by BOPTEST.
"""
from typing import Dict

import pandas as pd

KPI_LABELS = {
    "cost_tot": "HVAC energy cost in $/m2 or Euro/m2",
    "emis_tot": "HVAC energy emissions in kgCO2e/m2",
    "ener_tot": "HVAC energy total in kWh/m2",
    "pele_tot": "HVAC peak electrical demand in kW/m2",
    "pgas_tot": "HVAC peak gas demand in kW/m2",
    "pdih_tot": "HVAC peak district heating demand in kW/m2",
    "idis_tot": "Indoor air quality discomfort in ppmh/zone",
    "tdis_tot": "Thermal discomfort in Kh/zone",
    "time_rat": "Computational time ratio in s/ss"
}


def kpi_table(kpi: Dict) -> pd.DataFrame:
    """
    Return the KPI dict of ``get_kpi`` as a DataFrame.

    The index is the KPI name; columns are the description from
    ``KPI_LABELS`` (missing for unknown KPIs) and the value.
    """
    kpi_measures = pd.DataFrame(kpi, index=[0]).T
    kpi_measures.columns = ["Value"]
    kpi_measures.index.name = "KPI"
    kpi_measures["Description"] = kpi_measures.index.map(KPI_LABELS)
    kpi_measures["Value"] = pd.to_numeric(kpi_measures["Value"], errors="coerce")
    return kpi_measures[["Description", "Value"]]
