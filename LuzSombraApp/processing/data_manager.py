import pandas as pd
from pathlib import Path
from datetime import datetime
from typing import Dict, List
import logging

# Column order of the results store
RESULT_COLUMNS = [
    'filename', 'empresa', 'fundo', 'sector', 'lote', 'hilera', 'numero_planta',
    'porcentaje_luz', 'porcentaje_sombra', 'light_pixels', 'shadow_pixels', 'total_pixels',
    'policy', 'fecha_tomada', 'hora_tomada', 'latitud', 'longitud',
    'overlay_file', 'timestamp', 'error'
]


class DataManager:
    """CSV-backed store of classification results."""

    def __init__(self, output_dir: str = "output", csv_filename: str = "luz_sombra_results.csv"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.results_path = self.output_dir / csv_filename
        self.logger = logging.getLogger(__name__)

    def save_results(self, rows: List[Dict]) -> str:
        """
        Append result rows to the CSV store
        """
        if not rows:
            return str(self.results_path)
        df = pd.DataFrame(rows)
        df = df.reindex(columns=RESULT_COLUMNS + [c for c in df.columns if c not in RESULT_COLUMNS])
        df.to_csv(self.results_path, mode='a', header=not self.results_path.exists(), index=False)
        self.logger.info(f"Saved {len(rows)} results to {self.results_path}")
        return str(self.results_path)

    def load_results(self) -> pd.DataFrame:
        """
        Load all stored results
        """
        if self.results_path.exists():
            return pd.read_csv(self.results_path)
        return pd.DataFrame(columns=RESULT_COLUMNS)

    def export_results(self, format: str = "csv") -> str:
        """
        Export results in specified format
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        results = self.load_results()

        if format == "csv":
            export_path = self.output_dir / f"luz_sombra_export_{timestamp}.csv"
            results.to_csv(export_path, index=False)
        elif format == "json":
            export_path = self.output_dir / f"luz_sombra_export_{timestamp}.json"
            results.to_json(export_path, orient='records', indent=2)
        else:
            raise ValueError(f"Unsupported export format: {format}")

        self.logger.info(f"Exported results to {export_path}")
        return str(export_path)

    def get_analysis_summary(self) -> dict:
        """
        Generate summary statistics from classified images
        """
        results = self.load_results()
        if results.empty:
            return {}

        if 'error' in results.columns:
            failed = results['error'].notna()
        else:
            failed = pd.Series(False, index=results.index)
        ok = results[~failed]

        summary = {
            "total_images": len(results),
            "failed_images": int(failed.sum()),
            "average_light_percentage": ok["porcentaje_luz"].mean(),
            "min_light_percentage": ok["porcentaje_luz"].min(),
            "max_light_percentage": ok["porcentaje_luz"].max(),
            "average_shadow_percentage": ok["porcentaje_sombra"].mean(),
            "policies": sorted(ok["policy"].dropna().unique().tolist()),
        }

        return summary
