"""Known Entrez databases and the error raised for anything else."""

from __future__ import annotations

from models import NcbiError

DBS: dict[str, str] = {
    "gquery": "All Databases",
    "assembly": "Assembly",
    "bioproject": "BioProject",
    "biosample": "BioSample",
    "biosystems": "BioSystems",
    "books": "Books",
    "clinvar": "ClinVar",
    "clone": "Clone",
    "cdd": "Conserved Domains",
    "gap": "dbGaP",
    "dbvar": "dbVar",
    "nucest": "EST",
    "gene": "Gene",
    "genome": "Genome",
    "gds": "GEO DataSets",
    "geoprofiles": "GEO Profiles",
    "nucgss": "GSS",
    "gtr": "GTR",
    "homologene": "HomoloGene",
    "medgen": "MedGen",
    "mesh": "MeSH",
    "ncbisearch": "NCBI Web Site",
    "nlmcatalog": "NLM Catalog",
    "nuccore": "Nucleotide",
    "omim": "OMIM",
    "pmc": "PMC",
    "popset": "PopSet",
    "probe": "Probe",
    "protein": "Protein",
    "proteinclusters": "Protein Clusters",
    "pcassay": "PubChem BioAssay",
    "pccompound": "PubChem Compound",
    "pcsubstance": "PubChem Substance",
    "pubmed": "PubMed",
    "pubmedhealth": "PubMed Health",
    "snp": "SNP",
    "sparcle": "Sparcle",
    "sra": "SRA",
    "structure": "Structure",
    "taxonomy": "Taxonomy",
    "toolkit": "ToolKit",
    "toolkitall": "ToolKitAll",
    "toolkitbook": "ToolKitBook",
    "toolkitbookgh": "ToolKitBookgh",
    "unigene": "UniGene",
}


class InvalidDbError(NcbiError, ValueError):
    """Raised before any request is made when a database name is unknown."""

    def __init__(self, db: str) -> None:
        super().__init__(
            f"The database '{db}' is not a valid NCBI database. Valid databases are:\n{print_dbs()}"
        )
        self.db = db


def print_dbs(dbs: dict[str, str] | None = None) -> str:
    """Render the database table as one `key (Name)` line per entry."""
    dbs = DBS if dbs is None else dbs
    return "\n".join(f"{key} ({name})" for key, name in dbs.items())


def validate_db(db: str) -> str:
    if db not in DBS:
        raise InvalidDbError(db)
    return db
