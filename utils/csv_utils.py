# =============================================================================
# utils/csv_utils.py - CSV utilities
# =============================================================================

import csv
from typing import List, Dict, Any, Optional, Tuple
import logging

from core.exceptions import InputFileError


class CSVHandler:
    """Utilities for reading and writing CSV files"""

    @staticmethod
    def read_csv(file_path: str, encoding: str = 'utf-8-sig', delimiter: str = ',',
                 required_columns: Optional[List[str]] = None) -> Tuple[List[Dict[str, Any]], List[str]]:
        """Read CSV file and return rows as dictionaries plus the header list.

        Raises:
            InputFileError: when the file cannot be read or a required column is missing
        """
        logger = logging.getLogger(__name__)

        try:
            with open(file_path, 'r', newline='', encoding=encoding) as file:
                dict_reader = csv.DictReader(file, delimiter=delimiter)
                headers = [h.strip() for h in (dict_reader.fieldnames or [])]
                dict_reader.fieldnames = headers
                data = list(dict_reader)

        except FileNotFoundError as e:
            logger.error(f"Input file {file_path} not found")
            raise InputFileError(f"Input file {file_path} not found") from e
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.error(f"Error reading CSV: {e}")
            raise InputFileError(f"Error reading {file_path}: {e}") from e

        logger.info(f"CSV Headers: {headers[:10]}...")  # First 10 headers
        logger.info(f"Total columns: {len(headers)}")

        missing = [c for c in (required_columns or []) if c not in headers]
        if missing:
            logger.error(f"CSV {file_path} is missing required columns: {missing}")
            raise InputFileError(f"Missing required columns {missing} in {file_path}")

        logger.info(f"Successfully read {len(data)} records from {file_path}")
        return data, headers

    @staticmethod
    def write_csv(data: List[Dict[str, Any]], output_path: str,
                  fieldnames: Optional[List[str]] = None) -> None:
        """Write data to CSV file"""
        logger = logging.getLogger(__name__)

        if not data:
            logger.warning("No data to write")
            return

        if fieldnames is None:
            fieldnames = list(data[0].keys())

        try:
            with open(output_path, 'w', newline='', encoding='utf-8') as file:
                writer = csv.DictWriter(file, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(data)

            logger.info(f"Successfully wrote {len(data)} records to {output_path}")

        except Exception as e:
            logger.error(f"Error writing CSV: {e}")
            raise
