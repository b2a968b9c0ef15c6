"""
Batch classification of plot photographs.

Runs every image of a directory through a ClassificationEngine, stores the
overlays, and appends one result row per image to the CSV results store.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from LuzSombraApp.config.settings import Settings
from LuzSombraApp.processing.classification_engine import ClassificationEngine
from LuzSombraApp.processing.data_manager import DataManager
from LuzSombraApp.processing.errors import ClassificationError
from LuzSombraApp.processing.image_buffer import ImageBuffer
from LuzSombraApp.processing.metadata import get_capture_datetime, get_gps_data, parse_filename
from LuzSombraApp.processing.overlay import get_raster_sink, save_visualization
from LuzSombraApp.processing.utils import get_image_files

METADATA_FIELDS = ('empresa', 'fundo', 'sector', 'lote', 'hilera', 'numero_planta')


class BatchProcessorCore:
    """Core batch processing functionality without GUI."""

    def __init__(self, engine: ClassificationEngine, output_dir, settings: Optional[Settings] = None):
        """Initialize the batch processor core.

        Args:
            engine: initialized ClassificationEngine instance
            output_dir: Path to output directory
            settings: Settings providing output options (defaults to the engine's)
        """
        self.engine = engine
        self.settings = settings or engine.settings
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.processed_dir = self.output_dir / "processed_images"
        self.processed_dir.mkdir(exist_ok=True)
        self.raster_sink = get_raster_sink(self.settings.get_raster_backend())
        self.image_format = self.settings.get('output.image_export_format', 'png')
        self.save_visualizations = bool(self.settings.get('output.save_visualizations', False))
        self.data_manager = DataManager(self.output_dir, self.settings.get('output.csv_filename'))
        self.results: List[Dict] = []
        self.logger = logging.getLogger(__name__)

    def process_directory(self, input_dir, metadata: Optional[Dict] = None) -> List[Dict]:
        """Process all images in a directory.

        Args:
            input_dir: Path to directory containing images
            metadata: Field values (empresa, fundo, sector, lote) applied to every image

        Returns:
            List of result rows, including rows for images that failed
        """
        image_paths = get_image_files(str(input_dir))
        self.logger.info(f"Processing {len(image_paths)} images from {input_dir}")
        return self.process_files(image_paths, metadata)

    def process_files(self, image_paths: List[str], metadata: Optional[Dict] = None) -> List[Dict]:
        self.results = [self.process_image(path, metadata) for path in image_paths]
        self.data_manager.save_results(self.results)
        return self.results

    def process_image(self, image_path, metadata: Optional[Dict] = None) -> Dict:
        """Classify a single image and build its result row.

        A failure is recorded in the row's 'error' column, so it never reads
        as a legitimate 0% light result.
        """
        image_path = Path(image_path)
        row = {'filename': image_path.name, 'error': None}
        try:
            row = self._base_row(image_path, metadata or {})
            image = ImageBuffer.from_file(image_path)
            result = self.engine.classify(image)

            overlay_path = self.processed_dir / f"overlay_{image_path.stem}.{self.image_format}"
            self.raster_sink.save(result.overlay_buffer(), str(overlay_path))

            if self.save_visualizations:
                save_visualization(
                    image, result.overlay_buffer(), result.label_colors(),
                    result.light_percentage, result.shadow_percentage,
                    str(self.processed_dir / f"visualization_{image_path.stem}.png"),
                    title=image_path.name,
                )
        except (ClassificationError, OSError, ValueError) as e:
            self.logger.error(f"Error processing {image_path}: {e}")
            row['error'] = str(e)
            return row

        row.update({
            'porcentaje_luz': result.light_percentage,
            'porcentaje_sombra': result.shadow_percentage,
            'light_pixels': result.light_count,
            'shadow_pixels': result.shadow_count,
            'total_pixels': result.total_pixels,
            'policy': result.policy,
            'overlay_file': str(overlay_path),
        })
        self.logger.info(
            f"{image_path.name}: {result.light_percentage:.2f}% light, "
            f"{result.shadow_percentage:.2f}% shadow")
        return row

    def _base_row(self, image_path: Path, metadata: Dict) -> Dict:
        filename_data = parse_filename(image_path.name)
        row = {field: metadata.get(field) for field in METADATA_FIELDS}
        row['filename'] = image_path.name
        row['hilera'] = row['hilera'] or filename_data['hilera']
        row['numero_planta'] = row['numero_planta'] or filename_data['planta']

        taken = get_capture_datetime(str(image_path))
        row['fecha_tomada'] = taken['date'] if taken else None
        row['hora_tomada'] = taken['time'] if taken else None

        gps = get_gps_data(str(image_path))
        row['latitud'] = metadata.get('latitud', gps['latitude'] if gps else None)
        row['longitud'] = metadata.get('longitud', gps['longitude'] if gps else None)

        row['timestamp'] = datetime.now().isoformat()
        row['error'] = None
        return row
