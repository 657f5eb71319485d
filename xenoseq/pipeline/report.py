"""Summarize a finished run: report files, alignment metrics and notification.

The report is written once, after the task graph reaches a terminal state.
Problems while reporting are logged and never change the run verdict.
"""
import datetime
import html
import os
import smtplib
from email.message import EmailMessage

import pandas as pd

from xenoseq import utils
from xenoseq.distributed import resources
from xenoseq.log import logger
from xenoseq.ngsalign import hisat2
from xenoseq.pipeline import datadict as dd
from xenoseq.pipeline.errors import ReportingError
from xenoseq.provenance import programs

REPORT_DIR = "pipeline_info"
MULTIQC_REPORT = os.path.join("MultiQC", "multiqc_report.html")
METRIC_COLUMNS = ["sample", "alignment_rate", "summary"]

# ## Alignment metrics, collected across samples

def alignment_metrics(data, config):
    summary = dd.get_align_summary(data)
    return {"sample": dd.get_sample_name(data),
            "alignment_rate": hisat2.parse_summary(summary),
            "summary": summary}

def collect_metrics(metrics, config):
    """Write per-sample alignment rates into a single table.
    """
    out_file = os.path.join(utils.safe_makedir(os.path.join(config.outdir, REPORT_DIR)),
                            "alignment_summary.tsv")
    df = pd.DataFrame(metrics, columns=METRIC_COLUMNS)
    df.to_csv(out_file, sep="\t", index=False)
    return {"table": out_file, "metrics": metrics}

# ## Run report

def _report_lines(config, summary, metrics, versions, started, finished, error=None):
    verdict = "successful" if summary is not None and summary.success and error is None else "failed"
    lines = ["Run name: %s" % config.name,
             "Run status: %s" % verdict,
             "Started: %s" % started.strftime("%Y-%m-%d %H:%M:%S"),
             "Completed: %s" % finished.strftime("%Y-%m-%d %H:%M:%S"),
             "Duration: %s" % str(finished - started).split(".")[0],
             "Output directory: %s" % config.outdir,
             "Strandedness: %s" % config.strandedness,
             "Library: %s" % ("single end" if config.single_end else "paired end"),
             "Xeno contigs: %s" % ", ".join(config.xeno)]
    if error is not None:
        lines.append("Error: %s" % error)
    if summary is not None:
        lines += ["Tasks succeeded: %s" % summary.tasks_succeeded,
                  "Tasks errored: %s" % summary.tasks_failed,
                  "Samples succeeded (%s): %s" % (len(summary.succeeded), ", ".join(summary.succeeded)),
                  "Samples failed (%s): %s" % (len(summary.failed), ", ".join(str(x) for x in summary.failed))]
        for sample, err in summary.failed.items():
            lines.append("  %s: %s" % (sample, str(err).splitlines()[0] if str(err) else ""))
    if metrics:
        lines.append("Alignment rates:")
        for m in metrics:
            rate = "NA" if m["alignment_rate"] is None else "%.2f%%" % m["alignment_rate"]
            lines.append("  %s: %s" % (m["sample"], rate))
    if versions:
        lines.append("Software versions:")
        for p in versions:
            lines.append("  %s: %s" % (p["program"], p["version"] or "unknown"))
    return verdict, lines

def _write_html(lines, verdict, config, out_file):
    with open(out_file, "w") as out_handle:
        out_handle.write("<html><head><title>xenoseq run %s</title></head><body>\n" % html.escape(config.name))
        out_handle.write("<h1>xenoseq run %s: %s</h1>\n<pre>\n" % (html.escape(config.name), verdict))
        for line in lines:
            out_handle.write(html.escape(line) + "\n")
        out_handle.write("</pre>\n</body></html>\n")
    return out_file

def get_attachment(config):
    """MultiQC report to attach to the notification, when present and small enough.
    """
    multiqc_report = os.path.join(config.outdir, MULTIQC_REPORT)
    if not os.path.exists(multiqc_report):
        logger.debug("No MultiQC report to attach at %s" % multiqc_report)
        return None
    max_size = resources.parse_memory(config.max_multiqc_email_size) * 1024 * 1024
    size = os.path.getsize(multiqc_report)
    if size > max_size:
        logger.warning("MultiQC report %s (%s) exceeds email size limit %s, not attaching" %
                       (multiqc_report, utils.sizeof_fmt(size), config.max_multiqc_email_size))
        return None
    return multiqc_report

def send_email(config, subject, text, html_text, attachment=None, smtp_host="localhost"):
    """Send the run summary, with an optional attached report.
    """
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["To"] = config.email
    msg["From"] = config.email
    msg.set_content(text)
    msg.add_alternative(html_text, subtype="html")
    if attachment:
        with open(attachment, "rb") as in_handle:
            msg.add_attachment(in_handle.read(), maintype="text", subtype="html",
                               filename=os.path.basename(attachment))
    with smtplib.SMTP(smtp_host) as smtp:
        smtp.send_message(msg)
    logger.info("Sent summary e-mail to %s" % config.email)
    return msg

def finalize(config, summary, metrics=None, started=None, error=None, versions=None):
    """Write the run report and notify, once the task graph has finished.

    Returns the text and HTML report files, or None when reporting failed.
    """
    finished = datetime.datetime.now()
    started = started or finished
    try:
        out_dir = utils.safe_makedir(os.path.join(config.outdir, REPORT_DIR))
        if versions is None:
            versions = programs.get_versions(config)
        programs.write_versions(out_dir, config, versions)
        verdict, lines = _report_lines(config, summary, metrics, versions, started, finished, error)
        txt_file = os.path.join(out_dir, "pipeline_report.txt")
        with open(txt_file, "w") as out_handle:
            out_handle.write("\n".join(lines) + "\n")
        html_file = _write_html(lines, verdict, config, os.path.join(out_dir, "pipeline_report.html"))
        if verdict == "successful" and summary.failed:
            logger.warning("Run completed successfully, but some samples failed: %s" %
                           ", ".join(str(x) for x in summary.failed))
        if config.email:
            with open(html_file) as in_handle:
                html_text = in_handle.read()
            send_email(config, "[xenoseq] %s: %s" % (config.name, verdict), "\n".join(lines),
                       html_text, get_attachment(config))
        logger.info("Run %s %s, report: %s" % (config.name, verdict, txt_file))
        return {"txt": txt_file, "html": html_file, "verdict": verdict}
    except (IOError, OSError, ValueError, smtplib.SMTPException) as e:
        err = ReportingError("Failed to report on run %s: %s" % (config.name, e))
        logger.error(str(err))
        return None
