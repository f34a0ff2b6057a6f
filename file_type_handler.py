import os

import pandas as pd


class FileTypeHandler:
    """Loads a snapshot frame from disk and writes committed frames back."""

    SUPPORTED = (".csv", ".parquet", ".xlsx", ".h5")
    DEFAULT_SHEET_NAME = "Sheet1"

    def __init__(self, path: str, sheet: str | None = None):
        self.path = path
        self.sheet = sheet
        _, ext = os.path.splitext(path)
        self.ext = ext.lower()

        if self.ext not in self.SUPPORTED:
            raise ValueError(
                f"Unsupported file type '{self.ext or path}' (use .csv, .parquet, .xlsx, or .h5)"
            )

    def load(self) -> pd.DataFrame:
        if not os.path.exists(self.path) or os.path.getsize(self.path) == 0:
            return pd.DataFrame()

        if self.ext == ".csv":
            try:
                return pd.read_csv(self.path)
            except pd.errors.EmptyDataError:
                return pd.DataFrame()
        if self.ext == ".parquet":
            self._ensure_engine("pyarrow", "Parquet")
            return pd.read_parquet(self.path)
        if self.ext == ".xlsx":
            self._ensure_engine("openpyxl", "XLSX")
            return pd.read_excel(self.path, sheet_name=self.sheet or 0)
        self._ensure_engine("tables", "HDF5")
        with pd.HDFStore(self.path, mode="r") as store:
            keys = store.keys()
            if not keys:
                return pd.DataFrame()
            key = self.sheet or keys[0].lstrip("/")
            return store.get(key)

    def save(self, df: pd.DataFrame) -> None:
        if self.ext == ".csv":
            df.to_csv(self.path, index=False)
        elif self.ext == ".parquet":
            self._ensure_engine("pyarrow", "Parquet")
            df.to_parquet(self.path)
        elif self.ext == ".xlsx":
            self._ensure_engine("openpyxl", "XLSX")
            with pd.ExcelWriter(self.path) as writer:
                df.to_excel(writer, index=False, sheet_name=self.sheet or self.DEFAULT_SHEET_NAME)
        else:
            self._ensure_engine("tables", "HDF5")
            with pd.HDFStore(self.path, mode="w") as store:
                store.put(self.sheet or self.DEFAULT_SHEET_NAME, df)

    def _ensure_engine(self, module: str, label: str):
        try:
            __import__(module)
        except ImportError as exc:
            raise ImportError(
                f"{label} support requires {module}. Install via: pip install {module}"
            ) from exc
