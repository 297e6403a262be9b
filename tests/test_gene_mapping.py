"""Tests for gene ID translation (bitr) and validation gates.

Uses mocked mygene responses to avoid real API calls.
"""

from unittest.mock import patch

import polars as pl
import pytest

from deg_enrichment.gene_mapping import (
    GeneMapper,
    MappingReport,
    MappingValidator,
    attach_fold_changes,
    deduplicate_mapping,
    validate_gene_ids,
)
from deg_enrichment.gene_mapping.mapper import extract_ids


MOCK_ENTREZ_RESPONSE = {
    'out': [
        {'query': 'ENSG00000141510', 'entrezgene': 7157},
        {'query': 'ENSG00000012048', 'entrezgene': '672'},
        {'query': 'ENSG00000000000', 'notfound': True},
    ],
    'missing': ['ENSG00000000000'],
}

MOCK_MULTI_HIT_RESPONSE = {
    'out': [
        {'query': 'ENSG00000230417', 'entrezgene': 100128563},
        {'query': 'ENSG00000230417', 'entrezgene': 100287596},
    ],
    'missing': [],
}


def test_extract_ids_shapes():
    assert extract_ids({'entrezgene': 7157}, 'ENTREZID') == ['7157']
    assert extract_ids({'ensembl': [{'gene': 'ENSG1'}, {'gene': 'ENSG2'}]}, 'ENSEMBL') == ['ENSG1', 'ENSG2']
    assert extract_ids({'ensembl': {'gene': 'ENSG1'}}, 'ENSEMBL') == ['ENSG1']
    assert extract_ids({'uniprot': {'Swiss-Prot': ['P1', 'P1', 'P2']}}, 'UNIPROT') == ['P1', 'P2']
    assert extract_ids({'symbol': 'TP53'}, 'SYMBOL') == ['TP53']
    assert extract_ids({}, 'SYMBOL') == []


def test_translate_drops_unmapped():
    with patch('mygene.MyGeneInfo') as mock_mygene:
        mock_mygene.return_value.querymany.return_value = MOCK_ENTREZ_RESPONSE

        mapper = GeneMapper()
        mapping, report = mapper.translate(
            ['ENSG00000141510', 'ENSG00000012048', 'ENSG00000000000'],
            'ENSEMBL',
            'ENTREZID',
        )

    assert mapping.columns == ['ENSEMBL', 'ENTREZID']
    assert mapping['ENTREZID'].to_list() == ['7157', '672']
    assert report.total_genes == 3
    assert report.mapped == 2
    assert report.unmapped_ids == ['ENSG00000000000']
    assert report.success_rate == pytest.approx(2 / 3)
    assert report.failed_fraction == pytest.approx(1 / 3)

    call = mock_mygene.return_value.querymany.call_args
    assert call.kwargs['scopes'] == 'ensembl.gene'
    assert call.kwargs['fields'] == 'entrezgene'
    assert call.kwargs['species'] == 9606


def test_translate_keeps_all_targets_until_dedup():
    with patch('mygene.MyGeneInfo') as mock_mygene:
        mock_mygene.return_value.querymany.return_value = MOCK_MULTI_HIT_RESPONSE

        mapping, report = GeneMapper().translate(['ENSG00000230417'], 'ensembl', 'entrezid')

    assert mapping.height == 2
    assert report.mapped == 1

    deduped = deduplicate_mapping(mapping, 'ENSEMBL')
    assert deduped['ENTREZID'].to_list() == ['100128563']


def test_translate_batches():
    with patch('mygene.MyGeneInfo') as mock_mygene:
        mock_mygene.return_value.querymany.return_value = {'out': [], 'missing': []}

        GeneMapper(batch_size=2).translate(['A', 'B', 'C', 'D', 'E'], 'SYMBOL', 'ENTREZID')

    assert mock_mygene.return_value.querymany.call_count == 3


def test_translate_rejects_bad_key_types():
    with patch('mygene.MyGeneInfo'):
        mapper = GeneMapper()

        with pytest.raises(ValueError):
            mapper.translate(['A'], 'REFSEQ', 'ENTREZID')
        with pytest.raises(ValueError):
            mapper.translate(['A'], 'SYMBOL', 'SYMBOL')


def test_attach_fold_changes_keeps_rank_order():
    ranked = pl.DataFrame({
        'gene_id': ['ENSG3', 'ENSG1', 'ENSG2', 'ENSG4'],
        'log2_fold_change': [3.0, 1.0, -1.0, -2.0],
    })
    mapping = pl.DataFrame({
        'ENSEMBL': ['ENSG1', 'ENSG2', 'ENSG3', 'ENSG4'],
        'ENTREZID': ['11', '22', '33', '11'],
    })

    rekeyed = attach_fold_changes(mapping, ranked, 'ENSEMBL', 'ENTREZID')

    # ENSG4 maps to an Entrez id already taken by a higher-ranked gene
    assert rekeyed['gene_id'].to_list() == ['33', '11', '22']
    assert rekeyed['log2_fold_change'].to_list() == [3.0, 1.0, -1.0]


def test_validator_passes_high_rate():
    report = MappingReport('ENSEMBL', 'ENTREZID', total_genes=100, mapped=95)

    result = MappingValidator().validate(report)

    assert result.passed is True
    assert result.success_rate == pytest.approx(0.95)
    assert any("PASSED" in m for m in result.messages)


def test_validator_warns_medium_rate():
    report = MappingReport('ENSEMBL', 'ENTREZID', total_genes=100, mapped=75,
                           unmapped_ids=[f'G{i}' for i in range(25)])

    result = MappingValidator().validate(report)

    assert result.passed is True
    assert any("WARNING" in m for m in result.messages)


def test_validator_fails_low_rate():
    report = MappingReport('ENSEMBL', 'ENTREZID', total_genes=100, mapped=40,
                           unmapped_ids=[f'G{i}' for i in range(60)])

    result = MappingValidator(min_success_rate=0.6).validate(report)

    assert result.passed is False
    assert any("FAILED" in m for m in result.messages)


def test_save_unmapped_report(tmp_path):
    report = MappingReport('ENSEMBL', 'ENTREZID', total_genes=3, mapped=1,
                           unmapped_ids=['ENSG1', 'ENSG2'])
    output = tmp_path / 'reports' / 'unmapped.txt'

    MappingValidator().save_unmapped_report(report, output)

    lines = output.read_text().splitlines()
    assert lines[0].startswith('# Unmapped Gene IDs (ENSEMBL -> ENTREZID)')
    assert [line for line in lines if not line.startswith('#')] == ['ENSG1', 'ENSG2']


def test_validate_gene_ids_format():
    good = [f'ENSG{i:011d}' for i in range(20)]
    assert validate_gene_ids(good, 'ENSEMBL').passed is True

    bad = ['TP53', 'BRCA1', 'EGFR']
    assert validate_gene_ids(bad, 'ENSEMBL').passed is False

    # Symbols are not format-checked
    assert validate_gene_ids(bad, 'SYMBOL').passed is True


def test_validate_gene_ids_versioned_and_duplicates():
    ids = ['ENSG00000141510.17', 'ENSG00000141510.17', 'ENSMUSG00000059552']

    result = validate_gene_ids(ids, 'ENSEMBL')

    assert result.passed is True
    assert any('duplicate' in m for m in result.messages)


def test_validate_gene_ids_empty():
    assert validate_gene_ids([], 'ENSEMBL').passed is False
