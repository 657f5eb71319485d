from xenoseq.pipeline import datadict as dd


def test_new_sample():
    data = dd.new_sample("S1", "/data/S1.bam")
    assert dd.get_sample_name(data) == "S1"
    assert dd.get_input_file(data) == "/data/S1.bam"


def test_setter_does_not_mutate():
    data = dd.new_sample("S1", "/data/S1.bam")
    updated = dd.set_assembled_gtf(data, "S1_transcripts.gtf")
    assert dd.get_assembled_gtf(updated) == "S1_transcripts.gtf"
    assert not dd.is_set_assembled_gtf(data)
    assert updated["stringtie"]["transcripts"] == "S1_transcripts.gtf"


def test_always_list():
    data = dd.new_sample("S1", "/data/S1.bam")
    assert dd.get_fastq_files(data) == []
    data = dd.set_fastq_files(data, "S1.fastq.gz")
    assert dd.get_fastq_files(data) == ["S1.fastq.gz"]
